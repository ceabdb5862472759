"""Initial schema - courses, threads and audit log

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Courses
    op.create_table(
        'courses',
        sa.Column('code', sa.String(64), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('time_slot', sa.String(100), nullable=True),
        sa.Column('room', sa.String(100), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # SA display names
    op.create_table(
        'sa_profiles',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('display_name', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Messages
    op.create_table(
        'messages',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('course_code', sa.String(64), sa.ForeignKey('courses.code', ondelete='CASCADE'), nullable=False),
        sa.Column('client_token', sa.String(128), nullable=False),
        sa.Column('student_user_id', sa.String(255), nullable=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('body', sa.Text(), nullable=True),
        sa.Column('attachment_url', sa.Text(), nullable=True),
        sa.Column('attachment_type', sa.String(255), nullable=True),
        sa.Column('attachment_name', sa.String(255), nullable=True),
        sa.Column('sa_user_id', sa.String(255), nullable=True),
        sa.Column('sa_display_name', sa.Text(), nullable=True),
        sa.Column('parent_message_id', sa.Integer(), sa.ForeignKey('messages.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_messages_course_token_created', 'messages', ['course_code', 'client_token', 'created_at'])

    # Help calls
    op.create_table(
        'calls',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('course_code', sa.String(64), sa.ForeignKey('courses.code', ondelete='CASCADE'), nullable=False),
        sa.Column('client_token', sa.String(128), nullable=False),
        sa.Column('student_user_id', sa.String(255), nullable=True),
        sa.Column('seat_text', sa.Text(), nullable=True),
        sa.Column('handled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_calls_course_handled', 'calls', ['course_code', 'handled_at'])

    # Thread locks (no FK: removed explicitly when a course is deleted)
    op.create_table(
        'thread_locks',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('course_code', sa.String(64), nullable=False),
        sa.Column('client_token', sa.String(128), nullable=False),
        sa.Column('sa_user_id', sa.String(255), nullable=False),
        sa.Column('sa_name', sa.Text(), nullable=True),
        sa.Column('locked_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('course_code', 'client_token', name='uq_thread_locks_thread'),
    )

    # Read cursors (no FK, as above)
    op.create_table(
        'thread_reads',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('course_code', sa.String(64), nullable=False),
        sa.Column('client_token', sa.String(128), nullable=False),
        sa.Column('reader_role', sa.String(20), nullable=False),
        sa.Column('last_read_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('course_code', 'client_token', 'reader_role', name='uq_thread_reads_cursor'),
    )

    # Pins
    op.create_table(
        'thread_pins',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('course_code', sa.String(64), sa.ForeignKey('courses.code', ondelete='CASCADE'), nullable=False),
        sa.Column('client_token', sa.String(128), nullable=False),
        sa.Column('pinned_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('course_code', 'client_token', name='uq_thread_pins_thread'),
    )

    # Aliases
    op.create_table(
        'student_aliases',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('course_code', sa.String(64), sa.ForeignKey('courses.code', ondelete='CASCADE'), nullable=False),
        sa.Column('client_token', sa.String(128), nullable=False),
        sa.Column('alias_number', sa.Integer(), nullable=False),
        sa.UniqueConstraint('course_code', 'client_token', name='uq_student_aliases_thread'),
        sa.UniqueConstraint('course_code', 'alias_number', name='uq_student_aliases_number'),
    )

    # Audit log
    op.create_table(
        'event_log',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('event_type', sa.String(100), nullable=False),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_key', sa.String(255), nullable=False),
        sa.Column('course_code', sa.String(64), nullable=True),
        sa.Column('user_id', sa.String(255), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_event_log_course_created', 'event_log', ['course_code', 'created_at'])


def downgrade() -> None:
    op.drop_table('event_log')
    op.drop_table('student_aliases')
    op.drop_table('thread_pins')
    op.drop_table('thread_reads')
    op.drop_table('thread_locks')
    op.drop_table('calls')
    op.drop_table('messages')
    op.drop_table('sa_profiles')
    op.drop_table('courses')
