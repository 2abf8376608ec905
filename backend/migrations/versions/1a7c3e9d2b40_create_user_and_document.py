"""create user and document tables

Revision ID: 1a7c3e9d2b40
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c3e9d2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('uid', sa.String(length=32), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=False),
            sa.Column('display_name', sa.String(length=64), nullable=True),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
        )
        op.create_index('ix_user_uid', 'user', ['uid'], unique=True)
        op.create_index('ix_user_email', 'user', ['email'], unique=True)

    if 'document' not in existing_tables:
        op.create_table(
            'document',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('collection', sa.String(length=32), nullable=False),
            sa.Column('key', sa.String(length=64), nullable=False),
            sa.Column('body', sa.Text(), nullable=False),
            sa.Column('updated_at', sa.Float(), nullable=False),
            sa.UniqueConstraint('collection', 'key', name='uq_document_collection_key'),
        )
        op.create_index('ix_document_collection', 'document', ['collection'], unique=False)


def downgrade():
    op.drop_index('ix_document_collection', table_name='document')
    op.drop_table('document')
    op.drop_index('ix_user_email', table_name='user')
    op.drop_index('ix_user_uid', table_name='user')
    op.drop_table('user')
