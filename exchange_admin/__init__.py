"""交易所后台鉴权与令牌生命周期服务。"""
