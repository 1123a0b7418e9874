from alembic import op


revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS sys_feature_flags (
            id SERIAL PRIMARY KEY,
            flag_key VARCHAR(100) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            enabled BOOLEAN NOT NULL DEFAULT false,
            rollout_percentage SMALLINT NOT NULL DEFAULT 0,
            whitelist JSONB NOT NULL DEFAULT '[]'::jsonb,
            analytics_enabled BOOLEAN NOT NULL DEFAULT false,
            is_deleted BOOLEAN NOT NULL DEFAULT false,
            deleted_at TIMESTAMP WITH TIME ZONE,
            created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT ck_sys_feature_flags_rollout_percentage
                CHECK (rollout_percentage >= 0 AND rollout_percentage <= 100)
        );
        """
    )
    op.execute("CREATE UNIQUE INDEX IF NOT EXISTS ix_sys_feature_flags_flag_key ON sys_feature_flags(flag_key);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_sys_feature_flags_id ON sys_feature_flags(id);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS sys_feature_flag_audit (
            id SERIAL PRIMARY KEY,
            flag_key VARCHAR(100) NOT NULL,
            actor_id VARCHAR(64),
            actor_type VARCHAR(16) NOT NULL,
            action VARCHAR(16) NOT NULL,
            before_state JSONB,
            after_state JSONB NOT NULL,
            reason TEXT,
            trace_id VARCHAR(64),
            timestamp TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS ix_sys_feature_flag_audit_id ON sys_feature_flag_audit(id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_sys_feature_flag_audit_flag_key ON sys_feature_flag_audit(flag_key);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_sys_feature_flag_audit_actor_id ON sys_feature_flag_audit(actor_id);")
    op.execute("CREATE INDEX IF NOT EXISTS ix_sys_feature_flag_audit_timestamp ON sys_feature_flag_audit(timestamp);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS sys_feature_flag_evaluations (
            id SERIAL PRIMARY KEY,
            flag_key VARCHAR(100) NOT NULL,
            subject_type VARCHAR(16) NOT NULL,
            subject_id VARCHAR(128) NOT NULL,
            result BOOLEAN NOT NULL,
            consent_granted BOOLEAN NOT NULL,
            rollout_percentage_snapshot SMALLINT NOT NULL,
            evaluation_reason VARCHAR(32) NOT NULL,
            trace_id VARCHAR(64),
            timestamp TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT CURRENT_TIMESTAMP
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_sys_feature_flag_evaluations_timestamp "
        "ON sys_feature_flag_evaluations(timestamp);"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_sys_feature_flag_evaluations_flag_ts "
        "ON sys_feature_flag_evaluations(flag_key, timestamp);"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS ix_sys_feature_flag_evaluations_subject "
        "ON sys_feature_flag_evaluations(subject_type, subject_id);"
    )

    # 初始开关全部关闭，由管理员逐步放量
    op.execute(
        """
        INSERT INTO sys_feature_flags (flag_key, description, enabled, rollout_percentage, whitelist, analytics_enabled)
        VALUES
            ('stocks_widget', '行情小组件', false, 0, '[]'::jsonb, true),
            ('social_integration', '社交平台集成', false, 0, '[]'::jsonb, true),
            ('promoted_listings', '推广位列表', false, 0, '[]'::jsonb, true)
        ON CONFLICT (flag_key) DO NOTHING;
        """
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS sys_feature_flag_evaluations;")
    op.execute("DROP TABLE IF EXISTS sys_feature_flag_audit;")
    op.execute("DROP TABLE IF EXISTS sys_feature_flags;")
