"""flowheal - 生成式工作流校验与自愈核心"""

__version__ = "0.1.0"
