"""create tv_transcripts

Revision ID: 0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "tv_transcripts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("channel_name", sa.String(length=255), nullable=False, comment="频道名称"),
        sa.Column("channel_id", sa.String(length=255), nullable=True, comment="频道ID"),
        sa.Column("transcript_time", sa.String(length=64), nullable=False, comment="采集时间（展示用）"),
        sa.Column("bengali_text", sa.Text(), nullable=False, comment="孟加拉语文本"),
        sa.Column("hindi_text", sa.Text(), nullable=False, comment="印地语文本"),
        sa.Column("english_text", sa.Text(), nullable=False, comment="英语文本"),
        sa.Column("sentiment", sa.String(length=16), nullable=False, comment="情感倾向"),
        sa.Column("sentiment_score", sa.Float(), nullable=True, comment="情感分数(0-1)"),
        sa.Column("bjp_mention", sa.Boolean(), nullable=False, comment="是否提及BJP"),
        sa.Column("tmc_mention", sa.Boolean(), nullable=False, comment="是否提及TMC"),
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="入库时间(UTC)"
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_tv_transcripts")),
    )
    op.create_index(op.f("ix_tv_transcripts_channel_name"), "tv_transcripts", ["channel_name"])
    op.create_index(op.f("ix_tv_transcripts_created_at"), "tv_transcripts", ["created_at"])
    op.create_index("ix_tv_transcripts_channel_created", "tv_transcripts", ["channel_name", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_tv_transcripts_channel_created", table_name="tv_transcripts")
    op.drop_index(op.f("ix_tv_transcripts_created_at"), table_name="tv_transcripts")
    op.drop_index(op.f("ix_tv_transcripts_channel_name"), table_name="tv_transcripts")
    op.drop_table("tv_transcripts")
