"""Initial PassPilot schema

Revision ID: pp001_initial
Revises:
Create Date: 2026-10-18

Creates:
1. schools (tenant root)
2. users, registration_tokens, kiosk_devices
3. grades, students, teacher_grade_map
4. passes, with the partial unique index that allows one active pass per student
5. audits, rate_limit_buckets
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'pp001_initial'
down_revision = None
branch_labels = None
depends_on = None


ACTIVE_ONLY = sa.text("status = 'active'")


def upgrade():
    # ==========================================================================
    # 1. SCHOOLS
    # ==========================================================================
    op.create_table('schools',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('seats_allowed', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('schools', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_schools_active'), ['active'], unique=False)

    # ==========================================================================
    # 2. IDENTITY: USERS, INVITES, KIOSKS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='teacher'),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('display_name', sa.String(length=120), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_active_grade_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_school_id'), ['school_id'], unique=False)
        batch_op.create_index('ix_users_school_role', ['school_id', 'role'], unique=False)

    op.create_table('registration_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='teacher'),
        sa.Column('code_hash', sa.String(length=255), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('registration_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_registration_tokens_school_id'), ['school_id'], unique=False)
        batch_op.create_index('ix_registration_tokens_email_school', ['email', 'school_id'], unique=False)

    op.create_table('kiosk_devices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('room', sa.String(length=80), nullable=False),
        sa.Column('pin_hash', sa.String(length=255), nullable=False),
        sa.Column('token', sa.String(length=255), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('school_id', 'room', name='uq_kiosk_devices_school_room'),
        sa.UniqueConstraint('token'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('kiosk_devices', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_kiosk_devices_school_id'), ['school_id'], unique=False)

    # ==========================================================================
    # 3. ROSTER
    # ==========================================================================
    op.create_table('grades',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=80), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('school_id', 'name', name='uq_grades_school_name'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('grades', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_grades_school_id'), ['school_id'], unique=False)

    op.create_table('students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('grade_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=140), nullable=False),
        sa.Column('student_code', sa.String(length=80), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ),
        sa.ForeignKeyConstraint(['grade_id'], ['grades.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('students', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_students_school_id'), ['school_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_students_grade_id'), ['grade_id'], unique=False)
        batch_op.create_index('ix_students_school_grade', ['school_id', 'grade_id'], unique=False)

    op.create_table('teacher_grade_map',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('grade_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ),
        sa.ForeignKeyConstraint(['grade_id'], ['grades.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'grade_id', name='uq_teacher_grade_map_user_grade'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('teacher_grade_map', schema=None) as batch_op:
        batch_op.create_index('ix_teacher_grade_map_school_user', ['school_id', 'user_id'], unique=False)

    # ==========================================================================
    # 4. PASSES
    # ==========================================================================
    op.create_table('passes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('school_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=True),
        sa.Column('student_name', sa.String(length=140), nullable=False),
        sa.Column('reason', sa.String(length=200), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False, server_default='general'),
        sa.Column('custom_reason', sa.String(length=200), nullable=True),
        sa.Column('issued_by_user_id', sa.Integer(), nullable=True),
        sa.Column('kiosk_device_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='active'),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['school_id'], ['schools.id'], ),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ),
        sa.ForeignKeyConstraint(['issued_by_user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['kiosk_device_id'], ['kiosk_devices.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('passes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_passes_school_id'), ['school_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_passes_issued_by_user_id'), ['issued_by_user_id'], unique=False)
        batch_op.create_index('ix_passes_school_starts', ['school_id', 'starts_at'], unique=False)
        batch_op.create_index('ix_passes_school_status', ['school_id', 'status'], unique=False)

    # One active pass per student, enforced by the database
    op.create_index(
        'uq_passes_active_student',
        'passes',
        ['student_id'],
        unique=True,
        sqlite_where=ACTIVE_ONLY,
        postgresql_where=ACTIVE_ONLY,
    )

    # ==========================================================================
    # 5. AUDITS AND RATE LIMITS
    # ==========================================================================
    op.create_table('audits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('school_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('target_type', sa.String(length=32), nullable=True),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('data', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('audits', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_audits_actor_user_id'), ['actor_user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_audits_school_id'), ['school_id'], unique=False)
        batch_op.create_index('ix_audits_school_created', ['school_id', 'created_at'], unique=False)

    op.create_table('rate_limit_buckets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('window_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key', 'window_start', name='uq_rate_limit_buckets_key_window'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('rate_limit_buckets', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_rate_limit_buckets_window_start'), ['window_start'], unique=False)


def downgrade():
    op.drop_table('rate_limit_buckets')
    op.drop_table('audits')
    op.drop_index('uq_passes_active_student', table_name='passes')
    op.drop_table('passes')
    op.drop_table('teacher_grade_map')
    op.drop_table('students')
    op.drop_table('grades')
    op.drop_table('kiosk_devices')
    op.drop_table('registration_tokens')
    op.drop_table('users')
    op.drop_table('schools')
