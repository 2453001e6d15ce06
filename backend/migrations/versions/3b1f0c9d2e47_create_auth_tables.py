"""create principals, identity links, sessions and refresh tokens

Revision ID: 3b1f0c9d2e47
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = '3b1f0c9d2e47'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'principals',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=254), nullable=False),
        sa.Column('password_hash', sa.String(length=254), nullable=True),
        sa.Column('roles', sa.JSON(), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_principals')),
        sa.UniqueConstraint('email', name='uq_principals_email'),
    )
    op.create_index('ix_principals_email', 'principals', ['email'], unique=False)

    op.create_table(
        'federated_identity_links',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=64), nullable=False),
        sa.Column('subject', sa.String(length=255), nullable=False),
        sa.Column('principal_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['principal_id'], ['principals.id'], name=op.f('fk_federated_identity_links_principal_id_principals'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_federated_identity_links')),
        sa.UniqueConstraint('provider', 'subject', name='uq_federated_identity_links_provider_subject'),
    )
    op.create_index(op.f('ix_federated_identity_links_principal_id'), 'federated_identity_links', ['principal_id'], unique=False)

    op.create_table(
        'auth_sessions',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('principal_id', sa.String(length=36), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('current_refresh_jti', sa.String(length=64), nullable=True),
        sa.Column('revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=32), nullable=True),
        sa.ForeignKeyConstraint(['principal_id'], ['principals.id'], name=op.f('fk_auth_sessions_principal_id_principals'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_auth_sessions')),
    )
    op.create_index('ix_auth_sessions_principal_id', 'auth_sessions', ['principal_id'], unique=False)

    op.create_table(
        'refresh_tokens',
        sa.Column('jti', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('replaced_by_jti', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['session_id'], ['auth_sessions.id'], name=op.f('fk_refresh_tokens_session_id_auth_sessions'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('jti', name=op.f('pk_refresh_tokens')),
    )
    op.create_index('ix_refresh_tokens_session_id', 'refresh_tokens', ['session_id'], unique=False)


def downgrade():
    op.drop_index('ix_refresh_tokens_session_id', table_name='refresh_tokens')
    op.drop_table('refresh_tokens')
    op.drop_index('ix_auth_sessions_principal_id', table_name='auth_sessions')
    op.drop_table('auth_sessions')
    op.drop_index(op.f('ix_federated_identity_links_principal_id'), table_name='federated_identity_links')
    op.drop_table('federated_identity_links')
    op.drop_index('ix_principals_email', table_name='principals')
    op.drop_table('principals')
