"""Migração inicial: canais, clientes, conversas, mensagens, outbox de eventos e fila de tarefas."""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "channels",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("company_id", sa.Integer, nullable=False),
        sa.Column("name", sa.String(120), nullable=False, server_default=""),
        sa.Column("type", sa.String(32), nullable=False, server_default="whatsapp"),
        sa.Column("external_id", sa.String(64), nullable=True),
        sa.Column("config", sa.JSON(), nullable=False),
    )
    op.create_index("ix_channels_company_id", "channels", ["company_id"])
    op.create_index("ix_channels_external_id", "channels", ["external_id"])
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("company_id", sa.Integer, nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=False),
        sa.Column("external_id", sa.String(64), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False)),
        sa.UniqueConstraint("company_id", "phone", name="uq_customer_company_phone"),
    )
    op.create_table(
        "conversations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("channel_id", sa.Integer, sa.ForeignKey("channels.id"), nullable=False),
        sa.Column("customer_id", sa.Integer, sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False)),
    )
    op.create_index(
        "uq_conversation_open", "conversations", ["channel_id", "customer_id"], unique=True,
        postgresql_where=sa.text("status = 'open'"),
        sqlite_where=sa.text("status = 'open'"),
    )
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("conversation_id", sa.Integer, sa.ForeignKey("conversations.id"), nullable=False),
        sa.Column("external_id", sa.String(128), nullable=True, unique=True),
        sa.Column("sender_type", sa.String(16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("type", sa.String(16), nullable=False, server_default="text"),
        sa.Column("attachments", sa.JSON(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(24), nullable=False, server_default="pending"),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False)),
        sa.Column("sent_at", sa.TIMESTAMP(timezone=False), nullable=True),
    )
    op.create_index("ix_messages_conversation_id", "messages", ["conversation_id"])
    op.create_table(
        "outbox_events",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("company_id", sa.Integer, nullable=False),
        sa.Column("conversation_id", sa.Integer, nullable=False),
        sa.Column("type", sa.String(64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False)),
        sa.Column("published_at", sa.TIMESTAMP(timezone=False), nullable=True),
    )
    op.create_table(
        "queued_tasks",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="queued"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("available_at", sa.TIMESTAMP(timezone=False), nullable=False),
        sa.Column("locked_until", sa.TIMESTAMP(timezone=False), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=False)),
        sa.Column("finished_at", sa.TIMESTAMP(timezone=False), nullable=True),
    )
    op.create_index("ix_queued_tasks_due", "queued_tasks", ["status", "available_at"])

def downgrade() -> None:
    op.drop_table("queued_tasks")
    op.drop_table("outbox_events")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("customers")
    op.drop_table("channels")
