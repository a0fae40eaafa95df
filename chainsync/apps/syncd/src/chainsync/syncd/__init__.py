"""chainsync syncd -- 多链事件同步守护进程"""
