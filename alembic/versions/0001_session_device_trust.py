"""session_device_trust

Revision ID: 0001_session_device_trust
Revises:
Create Date: 2026-10-17 00:00:00.000000

세션/기기 신뢰 테이블 생성: users, devices, device_user_links, device_push_tokens, refresh_tokens.
Create the session and device trust tables.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


# revision identifiers, used by Alembic.
revision: str = '0001_session_device_trust'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # users — 보호자/관리자 계정 (email stored lower-cased)
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('role', sa.String(20), server_default='petOwner', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('failed_login_attempts', sa.Integer(), server_default='0', nullable=False),
        sa.Column('lockout_until', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    # devices — 기기 정보 및 신뢰 메타데이터
    # One row per client installation; never hard-deleted
    op.create_table(
        'devices',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('device_id', sa.String(128), nullable=False, unique=True),
        sa.Column('platform', sa.String(20), server_default='other', nullable=False),
        sa.Column('os_version', sa.String(50), nullable=True),
        sa.Column('app_version', sa.String(50), nullable=True),
        sa.Column('device_model', sa.String(100), nullable=True),
        sa.Column('device_name', sa.String(255), nullable=True),
        sa.Column('manufacturer', sa.String(100), nullable=True),
        sa.Column('is_tablet', sa.Boolean(), server_default=sa.text('false')),
        sa.Column('last_active_ip', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('app_signature', sa.String(255), nullable=True),
        sa.Column('device_fingerprint', sa.String(255), nullable=True),
        sa.Column('is_jailbroken', sa.Boolean(), server_default=sa.text('false')),
        sa.Column('has_biometric', sa.Boolean(), server_default=sa.text('false')),
        sa.Column('biometric_type', sa.String(20), server_default='none'),
        sa.Column('is_biometric_enabled', sa.Boolean(), server_default=sa.text('false')),
        sa.Column('trust_score', sa.Integer(), server_default='50', nullable=False),
        sa.Column('signature_mismatches', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('is_blocked', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('blocked_reason', sa.String(255), nullable=True),
        sa.Column('blocked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('login_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_active_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_logout_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('legacy_user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_devices_device_id', 'devices', ['device_id'])

    # device_user_links — 기기-사용자 연결 (one per device and user)
    op.create_table(
        'device_user_links',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('device_id', sa.String(128), sa.ForeignKey('devices.device_id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('device_id', 'user_id', name='uq_device_user_link'),
    )
    op.create_index('ix_device_user_links_user_id', 'device_user_links', ['user_id'])

    # 레거시 단일 소유자 기기 -> 연결 테이블 이전은 로그인 시점에 수행
    # Legacy single-owner devices keep `legacy_user_id`; links are created on next login

    # device_push_tokens — FCM/APNs 푸시 토큰
    op.create_table(
        'device_push_tokens',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('device_id', sa.String(128), sa.ForeignKey('devices.device_id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(512), nullable=False),
        sa.Column('token_type', sa.String(10), server_default='fcm', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.text('true'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('device_id', 'token', name='uq_device_push_token'),
    )
    op.create_index('ix_device_push_tokens_device_id', 'device_push_tokens', ['device_id'])

    # refresh_tokens — 불투명 리프레시 토큰 (SHA-256 digest only)
    op.create_table(
        'refresh_tokens',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('token_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_type', sa.String(20), nullable=False),
        sa.Column('device_id', sa.String(128), nullable=False),
        sa.Column('device_info', sa.JSON(), nullable=True),
        sa.Column('token_family', sa.String(64), nullable=False),
        sa.Column('usage_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_used_ip', sa.String(64), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_refresh_tokens_device_id', 'refresh_tokens', ['device_id'])
    op.create_index('ix_refresh_tokens_token_family', 'refresh_tokens', ['token_family'])
    op.create_index('ix_refresh_tokens_expires_at', 'refresh_tokens', ['expires_at'])
    op.create_index('ix_refresh_tokens_user_device', 'refresh_tokens', ['user_id', 'device_id'])


def downgrade() -> None:
    op.drop_index('ix_refresh_tokens_user_device', table_name='refresh_tokens')
    op.drop_index('ix_refresh_tokens_expires_at', table_name='refresh_tokens')
    op.drop_index('ix_refresh_tokens_token_family', table_name='refresh_tokens')
    op.drop_index('ix_refresh_tokens_device_id', table_name='refresh_tokens')
    op.drop_table('refresh_tokens')

    op.drop_index('ix_device_push_tokens_device_id', table_name='device_push_tokens')
    op.drop_table('device_push_tokens')

    op.drop_index('ix_device_user_links_user_id', table_name='device_user_links')
    op.drop_table('device_user_links')

    op.drop_index('ix_devices_device_id', table_name='devices')
    op.drop_table('devices')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
