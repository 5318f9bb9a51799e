"""CLI 命令模块。"""
