"""核心算法：输入为 numpy 数组/标量，不依赖数据库或网络，便于单元测试与复用。"""
