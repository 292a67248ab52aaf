"""Initial schema

Revision ID: 001
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def _review_columns():
    return [
        sa.Column('status', sa.String(length=20), nullable=True, default='Pending'),
        sa.Column('reviewed_by', sa.Integer(), nullable=True),
        sa.Column('reviewed_at', sa.DateTime(), nullable=True),
        sa.Column('review_note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    # Create roles table
    op.create_table('roles',
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('role_name', sa.String(length=50), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('role_id'),
        sa.UniqueConstraint('role_name')
    )
    op.create_index(op.f('ix_roles_role_id'), 'roles', ['role_id'], unique=False)

    # Create departments table
    op.create_table('departments',
        sa.Column('department_id', sa.Integer(), nullable=False),
        sa.Column('department_name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('department_id')
    )
    op.create_index(op.f('ix_departments_department_id'), 'departments', ['department_id'], unique=False)

    # Create users table
    op.create_table('users',
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=50), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=100), nullable=True),
        sa.Column('phone_number', sa.String(length=20), nullable=True),
        sa.Column('avatar', sa.String(length=500), nullable=True),
        sa.Column('department_id', sa.Integer(), nullable=True),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['department_id'], ['departments.department_id'], ),
        sa.ForeignKeyConstraint(['role_id'], ['roles.role_id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('user_id')
    )
    op.create_index(op.f('ix_users_user_id'), 'users', ['user_id'], unique=False)
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)

    # Create tasks / user_tasks tables
    op.create_table('tasks',
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.Column('task_name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('platform', sa.String(length=200), nullable=True),
        sa.Column('target_per_week', sa.Integer(), nullable=True, default=0),
        sa.Column('deadline', sa.DateTime(), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=True, default='Medium'),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('task_id')
    )
    op.create_index(op.f('ix_tasks_task_id'), 'tasks', ['task_id'], unique=False)

    op.create_table('user_tasks',
        sa.Column('user_task_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('task_id', sa.Integer(), nullable=False),
        sa.Column('completed_this_week', sa.Integer(), nullable=True, default=0),
        sa.Column('report_link', sa.String(length=500), nullable=True),
        sa.Column('week_start_date', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ),
        sa.ForeignKeyConstraint(['task_id'], ['tasks.task_id'], ),
        sa.PrimaryKeyConstraint('user_task_id')
    )
    op.create_index(op.f('ix_user_tasks_user_task_id'), 'user_tasks', ['user_task_id'], unique=False)

    # Create attendances table
    op.create_table('attendances',
        sa.Column('attendance_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('check_in_time', sa.DateTime(), nullable=True),
        sa.Column('check_in_latitude', sa.Float(), nullable=True),
        sa.Column('check_in_longitude', sa.Float(), nullable=True),
        sa.Column('check_in_address', sa.String(length=500), nullable=True),
        sa.Column('check_in_photos', sa.String(length=500), nullable=True),
        sa.Column('check_in_notes', sa.String(length=500), nullable=True),
        sa.Column('check_in_ip', sa.String(length=50), nullable=True),
        sa.Column('check_out_time', sa.DateTime(), nullable=True),
        sa.Column('check_out_latitude', sa.Float(), nullable=True),
        sa.Column('check_out_longitude', sa.Float(), nullable=True),
        sa.Column('check_out_address', sa.String(length=500), nullable=True),
        sa.Column('check_out_photos', sa.String(length=500), nullable=True),
        sa.Column('check_out_notes', sa.String(length=500), nullable=True),
        sa.Column('check_out_ip', sa.String(length=50), nullable=True),
        sa.Column('is_late', sa.Boolean(), nullable=True, default=False),
        sa.Column('is_late_excused', sa.Boolean(), nullable=True, default=False),
        sa.Column('is_within_geofence', sa.Boolean(), nullable=True, default=True),
        sa.Column('total_hours', sa.Float(), nullable=True),
        sa.Column('overtime_hours', sa.Float(), nullable=True, default=0),
        sa.Column('is_on_leave', sa.Boolean(), nullable=True, default=False),
        sa.Column('leave_type', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('attendance_id'),
        sa.UniqueConstraint('user_id', 'work_date', name='uix_attendance_user_date')
    )
    op.create_index(op.f('ix_attendances_attendance_id'), 'attendances', ['attendance_id'], unique=False)
    op.create_index(op.f('ix_attendances_work_date'), 'attendances', ['work_date'], unique=False)

    # Create request tables
    op.create_table('leave_requests',
        sa.Column('leave_request_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('leave_type', sa.String(length=50), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('total_days', sa.Float(), nullable=True, default=1),
        sa.Column('reason', sa.String(length=1000), nullable=False),
        sa.Column('proof_document', sa.String(length=500), nullable=True),
        *_review_columns(),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('leave_request_id')
    )
    op.create_index(op.f('ix_leave_requests_leave_request_id'), 'leave_requests', ['leave_request_id'], unique=False)
    op.create_index(op.f('ix_leave_requests_status'), 'leave_requests', ['status'], unique=False)

    op.create_table('overtime_requests',
        sa.Column('overtime_request_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('actual_check_out_time', sa.String(length=5), nullable=False),
        sa.Column('overtime_hours', sa.Float(), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('task_description', sa.String(length=1000), nullable=True),
        *_review_columns(),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('overtime_request_id')
    )
    op.create_index(op.f('ix_overtime_requests_overtime_request_id'), 'overtime_requests',
                    ['overtime_request_id'], unique=False)
    op.create_index(op.f('ix_overtime_requests_status'), 'overtime_requests', ['status'], unique=False)

    op.create_table('late_requests',
        sa.Column('late_request_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('request_date', sa.Date(), nullable=False),
        sa.Column('expected_arrival_time', sa.String(length=5), nullable=False),
        sa.Column('reason', sa.String(length=500), nullable=False),
        sa.Column('proof_document', sa.String(length=500), nullable=True),
        *_review_columns(),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ),
        sa.ForeignKeyConstraint(['reviewed_by'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('late_request_id')
    )
    op.create_index(op.f('ix_late_requests_late_request_id'), 'late_requests', ['late_request_id'], unique=False)
    op.create_index(op.f('ix_late_requests_status'), 'late_requests', ['status'], unique=False)

    # Create audit tables
    op.create_table('audit_logs',
        sa.Column('audit_log_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('entity_name', sa.String(length=100), nullable=True),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('old_values', sa.Text(), nullable=True),
        sa.Column('new_values', sa.Text(), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('location', sa.String(length=200), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('audit_log_id')
    )
    op.create_index(op.f('ix_audit_logs_audit_log_id'), 'audit_logs', ['audit_log_id'], unique=False)
    op.create_index(op.f('ix_audit_logs_action'), 'audit_logs', ['action'], unique=False)
    op.create_index(op.f('ix_audit_logs_timestamp'), 'audit_logs', ['timestamp'], unique=False)

    op.create_table('login_histories',
        sa.Column('login_history_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('username', sa.String(length=50), nullable=True),
        sa.Column('login_time', sa.DateTime(), nullable=True),
        sa.Column('logout_time', sa.DateTime(), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.Column('user_agent', sa.String(length=500), nullable=True),
        sa.Column('browser', sa.String(length=50), nullable=True),
        sa.Column('device', sa.String(length=50), nullable=True),
        sa.Column('is_success', sa.Boolean(), nullable=True, default=False),
        sa.Column('fail_reason', sa.String(length=200), nullable=True),
        sa.Column('location', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('login_history_id')
    )
    op.create_index(op.f('ix_login_histories_login_history_id'), 'login_histories',
                    ['login_history_id'], unique=False)
    op.create_index(op.f('ix_login_histories_login_time'), 'login_histories', ['login_time'], unique=False)

    op.create_table('password_reset_histories',
        sa.Column('reset_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('reset_by_user_id', sa.Integer(), nullable=True),
        sa.Column('old_password_hash', sa.String(length=255), nullable=True),
        sa.Column('reset_time', sa.DateTime(), nullable=True),
        sa.Column('reset_reason', sa.String(length=500), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.user_id'], ),
        sa.ForeignKeyConstraint(['reset_by_user_id'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('reset_id')
    )
    op.create_index(op.f('ix_password_reset_histories_reset_id'), 'password_reset_histories',
                    ['reset_id'], unique=False)

    # Create system_settings table
    op.create_table('system_settings',
        sa.Column('setting_id', sa.Integer(), nullable=False),
        sa.Column('setting_key', sa.String(length=100), nullable=False),
        sa.Column('setting_value', sa.Text(), nullable=True),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('data_type', sa.String(length=20), nullable=True, default='String'),
        sa.Column('category', sa.String(length=50), nullable=True, default='General'),
        sa.Column('is_active', sa.Boolean(), nullable=True, default=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['updated_by'], ['users.user_id'], ),
        sa.PrimaryKeyConstraint('setting_id')
    )
    op.create_index(op.f('ix_system_settings_setting_id'), 'system_settings', ['setting_id'], unique=False)
    op.create_index(op.f('ix_system_settings_setting_key'), 'system_settings', ['setting_key'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_system_settings_setting_key'), table_name='system_settings')
    op.drop_index(op.f('ix_system_settings_setting_id'), table_name='system_settings')
    op.drop_table('system_settings')
    op.drop_index(op.f('ix_password_reset_histories_reset_id'), table_name='password_reset_histories')
    op.drop_table('password_reset_histories')
    op.drop_index(op.f('ix_login_histories_login_time'), table_name='login_histories')
    op.drop_index(op.f('ix_login_histories_login_history_id'), table_name='login_histories')
    op.drop_table('login_histories')
    op.drop_index(op.f('ix_audit_logs_timestamp'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_action'), table_name='audit_logs')
    op.drop_index(op.f('ix_audit_logs_audit_log_id'), table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index(op.f('ix_late_requests_status'), table_name='late_requests')
    op.drop_index(op.f('ix_late_requests_late_request_id'), table_name='late_requests')
    op.drop_table('late_requests')
    op.drop_index(op.f('ix_overtime_requests_status'), table_name='overtime_requests')
    op.drop_index(op.f('ix_overtime_requests_overtime_request_id'), table_name='overtime_requests')
    op.drop_table('overtime_requests')
    op.drop_index(op.f('ix_leave_requests_status'), table_name='leave_requests')
    op.drop_index(op.f('ix_leave_requests_leave_request_id'), table_name='leave_requests')
    op.drop_table('leave_requests')
    op.drop_index(op.f('ix_attendances_work_date'), table_name='attendances')
    op.drop_index(op.f('ix_attendances_attendance_id'), table_name='attendances')
    op.drop_table('attendances')
    op.drop_index(op.f('ix_user_tasks_user_task_id'), table_name='user_tasks')
    op.drop_table('user_tasks')
    op.drop_index(op.f('ix_tasks_task_id'), table_name='tasks')
    op.drop_table('tasks')
    op.drop_index(op.f('ix_users_username'), table_name='users')
    op.drop_index(op.f('ix_users_user_id'), table_name='users')
    op.drop_table('users')
    op.drop_index(op.f('ix_departments_department_id'), table_name='departments')
    op.drop_table('departments')
    op.drop_index(op.f('ix_roles_role_id'), table_name='roles')
    op.drop_table('roles')
