"""chainsync Core -- 领域模型、缓存存储与变更应用"""
