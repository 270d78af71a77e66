"""
应用服务层: 指标计算、单指标回测、批量优化
"""
