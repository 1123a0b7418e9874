"""
功能开关服务异常定义
"""


class FeatureFlagError(Exception):
    """功能开关服务错误基类"""


class FeatureFlagValidationError(FeatureFlagError, ValueError):
    """配置校验失败，未做任何修改"""


class FeatureFlagConflictError(FeatureFlagValidationError):
    """开关键已存在（包括已删除的开关，键不复用）"""


class FeatureFlagNotFoundError(FeatureFlagError, LookupError):
    """开关不存在或已删除"""

    def __init__(self, flag_key: str):
        super().__init__(f"功能开关 '{flag_key}' 不存在")
        self.flag_key = flag_key
