"""initial schema: users, auth tables, forms, fields, responses, settings

Revision ID: a0b1c2d3e401
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = 'a0b1c2d3e401'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('email_verified', sa.DateTime(), nullable=True, comment='メール認証日時'),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('image', sa.String(1024), nullable=True),
        sa.Column('password', sa.String(255), nullable=True, comment='bcryptハッシュ (パスワードログイン時のみ)'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'accounts',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('user_id', sa.String(32), nullable=False),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('provider', sa.String(100), nullable=False),
        sa.Column('provider_account_id', sa.String(255), nullable=False),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('expires_at', sa.Integer(), nullable=True, comment='UNIX秒'),
        sa.Column('token_type', sa.String(50), nullable=True),
        sa.Column('scope', sa.String(1024), nullable=True),
        sa.Column('id_token', sa.Text(), nullable=True),
        sa.Column('session_state', sa.String(255), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'provider_account_id', name='uq_account_provider'),
    )
    op.create_index('ix_accounts_user_id', 'accounts', ['user_id'])

    op.create_table(
        'sessions',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('session_token', sa.String(255), nullable=False),
        sa.Column('user_id', sa.String(32), nullable=False),
        sa.Column('expires', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_token'),
    )
    op.create_index('ix_sessions_user_id', 'sessions', ['user_id'])

    op.create_table(
        'verification_tokens',
        sa.Column('identifier', sa.String(255), nullable=False, comment='メールアドレス'),
        sa.Column('token', sa.String(255), nullable=False),
        sa.Column('expires', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('identifier', 'token', name='pk_verification_token'),
        sa.UniqueConstraint('token'),
    )

    op.create_table(
        'forms',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False, comment='公開URL用'),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('user_id', sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_forms_slug', 'forms', ['slug'], unique=True)
    op.create_index('ix_forms_user_id', 'forms', ['user_id'])

    op.create_table(
        'fields',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('type', sa.String(50), nullable=False, comment='text/textarea/email/number/date/select/checkbox/radio'),
        sa.Column('label', sa.String(255), nullable=False),
        sa.Column('placeholder', sa.String(255), nullable=True),
        sa.Column('required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('order', sa.Integer(), nullable=False, comment='フォーム内の表示順'),
        sa.Column('options', sa.JSON(), nullable=True, comment='選択肢など (形式は任意)'),
        sa.Column('form_id', sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(['form_id'], ['forms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_fields_form_id', 'fields', ['form_id'])

    op.create_table(
        'responses',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('form_id', sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(['form_id'], ['forms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_responses_form_id', 'responses', ['form_id'])
    op.create_index('ix_responses_submitted_at', 'responses', ['submitted_at'])

    op.create_table(
        'field_values',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('response_id', sa.String(32), nullable=False),
        sa.Column('field_id', sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(['response_id'], ['responses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['field_id'], ['fields.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('response_id', 'field_id', name='uq_response_field'),
    )
    op.create_index('ix_field_values_response_id', 'field_values', ['response_id'])
    op.create_index('ix_field_values_field_id', 'field_values', ['field_id'])

    op.create_table(
        'form_settings',
        sa.Column('id', sa.String(32), nullable=False),
        sa.Column('notify_email', sa.String(255), nullable=True, comment='通知先メール (主)'),
        sa.Column('notify_emails', sa.JSON(), nullable=True, comment='追加の通知先メール一覧'),
        sa.Column('webhook_url', sa.String(2048), nullable=True),
        sa.Column('captcha_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('captcha_provider', sa.String(32), nullable=True, comment='turnstile / hcaptcha'),
        sa.Column('captcha_secret_key', sa.String(255), nullable=True),
        sa.Column('form_id', sa.String(32), nullable=False),
        sa.ForeignKeyConstraint(['form_id'], ['forms.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('form_id'),
    )


def downgrade() -> None:
    op.drop_table('form_settings')
    op.drop_index('ix_field_values_field_id', table_name='field_values')
    op.drop_index('ix_field_values_response_id', table_name='field_values')
    op.drop_table('field_values')
    op.drop_index('ix_responses_submitted_at', table_name='responses')
    op.drop_index('ix_responses_form_id', table_name='responses')
    op.drop_table('responses')
    op.drop_index('ix_fields_form_id', table_name='fields')
    op.drop_table('fields')
    op.drop_index('ix_forms_user_id', table_name='forms')
    op.drop_index('ix_forms_slug', table_name='forms')
    op.drop_table('forms')
    op.drop_table('verification_tokens')
    op.drop_index('ix_sessions_user_id', table_name='sessions')
    op.drop_table('sessions')
    op.drop_index('ix_accounts_user_id', table_name='accounts')
    op.drop_table('accounts')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
