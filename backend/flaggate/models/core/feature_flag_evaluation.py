"""
功能开关评估日志模型
仅在调用方授权分析且开关启用分析时写入，用于灰度监控与排查
"""

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, SmallInteger, String, func

from flaggate.db.database import Base
from flaggate.utils.clock import utcnow


class FeatureFlagEvaluation(Base):
    """功能开关评估日志表 - sys_feature_flag_evaluations"""

    __tablename__ = "sys_feature_flag_evaluations"
    __table_args__ = (
        Index("ix_sys_feature_flag_evaluations_flag_ts", "flag_key", "timestamp"),
        Index("ix_sys_feature_flag_evaluations_subject", "subject_type", "subject_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    flag_key = Column(String(100), nullable=False, comment="开关键")
    subject_type = Column(String(16), nullable=False, comment="主体类型 user/session")
    subject_id = Column(String(128), nullable=False, comment="用户ID或会话哈希")
    result = Column(Boolean, nullable=False, comment="评估结果")
    consent_granted = Column(Boolean, nullable=False, comment="是否授权分析")
    rollout_percentage_snapshot = Column(SmallInteger, nullable=False, comment="评估时的灰度百分比")
    evaluation_reason = Column(String(32), nullable=False, comment="评估原因")
    trace_id = Column(String(64), nullable=True, comment="请求追踪ID")
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True, default=utcnow, server_default=func.now(), comment="评估时间")
