"""Таблицы розыгрышей, участников и победителей

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 12:00:00

"""
from alembic import op
import sqlalchemy as sa

revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None

id_type = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        'raffles',
        sa.Column('id', id_type, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('announcement_text', sa.Text(), nullable=True),
        sa.Column('prize', sa.String(), nullable=False),
        sa.Column('prize_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_participants', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ends_at', sa.DateTime(), nullable=False),
        sa.Column('announcement_message_id', sa.BigInteger(), nullable=True),
        sa.Column('created_by', sa.BigInteger(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('prize_count >= 1', name='ck_raffles_prize_count'),
        sa.CheckConstraint('max_participants >= 0', name='ck_raffles_max_participants'),
    )
    op.create_index('idx_raffles_ends_at', 'raffles', ['ends_at'])

    op.create_table(
        'raffle_participants',
        sa.Column('id', id_type, primary_key=True, autoincrement=True),
        sa.Column('raffle_id', sa.BigInteger(), sa.ForeignKey('raffles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('telegram_id', sa.BigInteger(), nullable=False),
        sa.Column('username', sa.String(), nullable=True),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('ip_address', sa.String(), nullable=False),
        sa.Column('joined_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('raffle_id', 'telegram_id', name='uq_raffle_participant_user'),
        sa.UniqueConstraint('raffle_id', 'ip_address', name='uq_raffle_participant_ip'),
    )
    op.create_index('idx_raffle_participants_raffle_id', 'raffle_participants', ['raffle_id'])

    op.create_table(
        'raffle_winners',
        sa.Column('id', id_type, primary_key=True, autoincrement=True),
        sa.Column('raffle_id', sa.BigInteger(), sa.ForeignKey('raffles.id', ondelete='CASCADE'), nullable=False),
        sa.Column('participant_id', sa.BigInteger(),
                  sa.ForeignKey('raffle_participants.id', ondelete='CASCADE'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('prize', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('raffle_id', 'position', name='uq_raffle_winner_position'),
        sa.UniqueConstraint('raffle_id', 'participant_id', name='uq_raffle_winner_participant'),
    )
    op.create_index('idx_raffle_winners_raffle_id', 'raffle_winners', ['raffle_id'])


def downgrade() -> None:
    op.drop_index('idx_raffle_winners_raffle_id', table_name='raffle_winners')
    op.drop_table('raffle_winners')
    op.drop_index('idx_raffle_participants_raffle_id', table_name='raffle_participants')
    op.drop_table('raffle_participants')
    op.drop_index('idx_raffles_ends_at', table_name='raffles')
    op.drop_table('raffles')
