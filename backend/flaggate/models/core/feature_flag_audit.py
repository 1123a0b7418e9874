"""
功能开关审计模型
每次成功的配置变更写入一行，记录变更前后快照；只追加，不更新不删除
"""

from sqlalchemy import Column, DateTime, Integer, String, Text, func

from flaggate.db.database import Base
from flaggate.models.core.feature_flag import JSONType
from flaggate.utils.clock import utcnow


class FeatureFlagAudit(Base):
    """功能开关审计表 - sys_feature_flag_audit"""

    __tablename__ = "sys_feature_flag_audit"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    flag_key = Column(String(100), index=True, nullable=False, comment="开关键")
    actor_id = Column(String(64), nullable=True, index=True, comment="操作人ID（系统操作为空）")
    actor_type = Column(String(16), nullable=False, comment="操作人类型 admin/system")
    action = Column(String(16), nullable=False, comment="操作 create/update/delete")
    before_state = Column(JSONType, nullable=True, comment="变更前快照")
    after_state = Column(JSONType, nullable=False, comment="变更后快照")
    reason = Column(Text, nullable=True, comment="变更原因")
    trace_id = Column(String(64), nullable=True, comment="请求追踪ID")
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True, default=utcnow, server_default=func.now(), comment="操作时间")

    def __repr__(self) -> str:
        return f"<FeatureFlagAudit(id={self.id}, flag_key={self.flag_key!r}, action={self.action!r})>"
