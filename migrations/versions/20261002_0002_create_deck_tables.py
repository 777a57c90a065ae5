"""Create decks, cards and the review history."""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261002_0002"
down_revision: Union[str, None] = "20261001_0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "decks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("parent_deck_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("front_label", sa.String(length=64), server_default=sa.text("'Question'"), nullable=False),
        sa.Column("back_label", sa.String(length=64), server_default=sa.text("'Answer'"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ("chat_id",),
            ("users.chat_id",),
            name="fk_decks_chat_id_users",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ("parent_deck_id",),
            ("decks.id",),
            name="fk_decks_parent_deck_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_decks_chat_id_parent_deck_id", "decks", ("chat_id", "parent_deck_id"))

    op.create_table(
        "cards",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("deck_id", sa.Integer(), nullable=False),
        sa.Column("front", sa.Text(), nullable=False),
        sa.Column("back", sa.Text(), nullable=False),
        sa.Column("interval", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("ease_factor", sa.Float(), server_default=sa.text("2.5"), nullable=False),
        sa.Column(
            "next_review_date",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("review_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("success_rate", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("version", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ("deck_id",),
            ("decks.id",),
            name="fk_cards_deck_id_decks",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint("ease_factor >= 1.3", name="ck_cards_ease_factor_min"),
        sa.CheckConstraint('"interval" >= 0', name="ck_cards_interval_non_negative"),
    )
    op.create_index("ix_cards_deck_id_next_review_date", "cards", ("deck_id", "next_review_date"))
    op.create_index("ix_cards_deck_id_review_count", "cards", ("deck_id", "review_count"))

    op.create_table(
        "reviews",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("card_id", sa.Integer(), nullable=False),
        sa.Column("performance_score", sa.Integer(), nullable=False),
        sa.Column("time_taken", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column(
            "reviewed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ("card_id",),
            ("cards.id",),
            name="fk_reviews_card_id_cards",
            ondelete="CASCADE",
        ),
        sa.CheckConstraint(
            "performance_score >= 0 AND performance_score <= 5",
            name="ck_reviews_performance_score_range",
        ),
    )
    op.create_index("ix_reviews_card_id", "reviews", ("card_id",))


def downgrade() -> None:
    op.drop_index("ix_reviews_card_id", table_name="reviews")
    op.drop_table("reviews")
    op.drop_index("ix_cards_deck_id_review_count", table_name="cards")
    op.drop_index("ix_cards_deck_id_next_review_date", table_name="cards")
    op.drop_table("cards")
    op.drop_index("ix_decks_chat_id_parent_deck_id", table_name="decks")
    op.drop_table("decks")
