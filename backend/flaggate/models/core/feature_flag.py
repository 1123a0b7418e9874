"""
系统功能开关模型
主开关 + 白名单 + 百分比灰度，按 flag_key 唯一标识
"""

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Integer,
    SmallInteger,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import expression

from flaggate.db.database import Base
from flaggate.utils.clock import utcnow

# PostgreSQL 下使用 JSONB，其它方言（测试用 SQLite）退化为 JSON
JSONType = JSON().with_variant(JSONB(), "postgresql")


class FeatureFlag(Base):
    """系统功能开关表 - sys_feature_flags"""

    __tablename__ = "sys_feature_flags"
    __table_args__ = (
        CheckConstraint(
            "rollout_percentage >= 0 AND rollout_percentage <= 100",
            name="ck_sys_feature_flags_rollout_percentage",
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    flag_key = Column(String(100), unique=True, index=True, nullable=False, comment="开关键（创建后不可修改）")
    description = Column(Text, nullable=False, default="", comment="开关说明")
    enabled = Column(Boolean, nullable=False, default=False, server_default=expression.false(), comment="主开关")
    rollout_percentage = Column(SmallInteger, nullable=False, default=0, server_default="0", comment="灰度百分比 0-100")
    whitelist = Column(JSONType, nullable=False, default=lambda: [], comment="白名单（用户ID或会话哈希，有序）")
    analytics_enabled = Column(
        Boolean, nullable=False, default=False, server_default=expression.false(), comment="是否记录评估日志"
    )
    is_deleted = Column(Boolean, nullable=False, default=False, server_default=expression.false(), comment="是否已删除")
    deleted_at = Column(DateTime(timezone=True), nullable=True, comment="删除时间")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), comment="创建时间")
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now(), comment="更新时间")

    def __repr__(self) -> str:
        return f"<FeatureFlag(flag_key={self.flag_key!r}, enabled={self.enabled}, rollout={self.rollout_percentage})>"
