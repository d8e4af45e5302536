"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00

"""
import sqlalchemy as sa

from alembic import op

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None

UUID = sa.CHAR(36)


def _timestamps(updated: bool = True):
    columns = [sa.Column('created_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False)]
    if updated:
        columns.append(
            sa.Column(
                'updated_at', sa.TIMESTAMP(),
                server_default=sa.text('CURRENT_TIMESTAMP ON UPDATE CURRENT_TIMESTAMP'), nullable=False,
            )
        )
    return columns


def _progress_table(name: str, unit_table: str, unit_key: str) -> None:
    op.create_table(
        name,
        sa.Column('id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column(unit_key, UUID, nullable=False),
        sa.Column('progress_seconds', sa.Integer(), server_default='0', nullable=False),
        sa.Column('completed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('completed_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('last_watched_at', sa.TIMESTAMP(), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', unit_key, name=f'uq_{name}'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint([unit_key], [f'{unit_table}.id'], ondelete='CASCADE'),
    )


def upgrade() -> None:
    # Identity
    op.create_table(
        'users',
        sa.Column('id', UUID, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('email_confirmed_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('last_login', sa.TIMESTAMP(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'profiles',
        sa.Column('id', UUID, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('avatar_url', sa.String(500), nullable=True),
        sa.Column('role', sa.Enum('student', 'admin'), server_default='student', nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.ForeignKeyConstraint(['id'], ['users.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'auth_tokens',
        sa.Column('id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('token_hash', sa.CHAR(64), nullable=False),
        sa.Column('token_type', sa.Enum('signup', 'recovery'), nullable=False),
        sa.Column('expires_at', sa.TIMESTAMP(), nullable=False),
        sa.Column('consumed_at', sa.TIMESTAMP(), nullable=True),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
    )

    # Course content
    op.create_table(
        'modules',
        sa.Column('id', UUID, nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('thumbnail_url', sa.String(500), nullable=True),
        sa.Column('bunny_video_guid', sa.String(100), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), server_default='0', nullable=False),
        sa.Column('resources', sa.JSON(), nullable=True),
        sa.Column('order_index', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_published', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_modules_order', 'modules', ['order_index'])

    op.create_table(
        'lessons',
        sa.Column('id', UUID, nullable=False),
        sa.Column('module_id', UUID, nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('bunny_video_guid', sa.String(100), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), server_default='0', nullable=False),
        sa.Column('resources', sa.JSON(), nullable=True),
        sa.Column('order_index', sa.Integer(), server_default='0', nullable=False),
        sa.Column('is_published', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['module_id'], ['modules.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_lessons_module_order', 'lessons', ['module_id', 'order_index'])

    # Enrollment, one row per user
    op.create_table(
        'enrollments',
        sa.Column('id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('payment_provider', sa.Enum('stripe', 'dlocal', 'manual'), nullable=False),
        sa.Column('payment_id', sa.String(255), nullable=True),
        sa.Column(
            'payment_status', sa.Enum('pending', 'completed', 'failed', 'refunded'),
            server_default='pending', nullable=False,
        ),
        sa.Column('amount_usd', sa.DECIMAL(10, 2), nullable=False),
        sa.Column('currency', sa.String(10), nullable=False),
        sa.Column('amount_local', sa.DECIMAL(12, 2), nullable=True),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('country', sa.String(100), nullable=True),
        sa.Column('enrolled_at', sa.TIMESTAMP(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
    )

    _progress_table('module_progress', 'modules', 'module_id')
    _progress_table('lesson_progress', 'lessons', 'lesson_id')

    op.create_table(
        'invitations',
        sa.Column('id', UUID, nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('token', sa.CHAR(64), nullable=False),
        sa.Column('invited_by', UUID, nullable=True),
        sa.Column('accepted_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('expires_at', sa.TIMESTAMP(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token'),
        sa.ForeignKeyConstraint(['invited_by'], ['profiles.id'], ondelete='SET NULL'),
    )
    op.create_index('idx_invitations_email', 'invitations', ['email'])

    # Community
    op.create_table(
        'direct_messages',
        sa.Column('id', UUID, nullable=False),
        sa.Column('student_id', UUID, nullable=False),
        sa.Column('sender_id', UUID, nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(fsp=3), server_default=sa.text('CURRENT_TIMESTAMP(3)'), nullable=False),
        sa.Column('read_at', sa.TIMESTAMP(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['student_id'], ['profiles.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['profiles.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_messages_student', 'direct_messages', ['student_id', 'created_at'])

    op.create_table(
        'forum_posts',
        sa.Column('id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('title', sa.String(200), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_answered', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'forum_replies',
        sa.Column('id', UUID, nullable=False),
        sa.Column('post_id', UUID, nullable=False),
        sa.Column('user_id', UUID, nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('is_admin_reply', sa.Boolean(), server_default=sa.false(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['post_id'], ['forum_posts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'announcements',
        sa.Column('id', UUID, nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_by', UUID, nullable=False),
        sa.Column('published_at', sa.TIMESTAMP(), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(updated=False),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['created_by'], ['profiles.id'], ondelete='CASCADE'),
    )


def downgrade() -> None:
    op.drop_table('announcements')
    op.drop_table('forum_replies')
    op.drop_table('forum_posts')
    op.drop_table('direct_messages')
    op.drop_table('invitations')
    op.drop_table('lesson_progress')
    op.drop_table('module_progress')
    op.drop_table('enrollments')
    op.drop_table('lessons')
    op.drop_table('modules')
    op.drop_table('auth_tokens')
    op.drop_table('profiles')
    op.drop_table('users')
