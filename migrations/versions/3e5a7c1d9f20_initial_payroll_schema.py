"""initial payroll schema (runs, details, summaries, salary history, TER tables, overtime)

Revision ID: 3e5a7c1d9f20
Revises:
Create Date: 2025-11-10 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3e5a7c1d9f20'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = (
    sa.Enum('present', 'late', 'absent', 'leave', 'sick', name='attendance_status_enum'),
    sa.Enum('pending', 'approved', 'rejected', name='overtime_status_enum'),
    sa.Enum('loan', 'other', name='pay_adjustment_type_enum'),
    sa.Enum('draft', 'finalized', 'paid', 'cancelled', name='payroll_run_status_enum'),
    sa.Enum('pending', 'paid', name='payroll_payment_status_enum'),
)


def _money(name, **kw):
    return sa.Column(name, sa.Numeric(14, 2), nullable=False, server_default='0', **kw)


def upgrade() -> None:
    op.create_table(
        'employees',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('email', sa.String(length=255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(length=160), nullable=False),
        sa.Column('department', sa.String(length=120), nullable=True),
        sa.Column('position', sa.String(length=120), nullable=True),
        sa.Column('doj', sa.Date(), nullable=True),
        sa.Column('dol', sa.Date(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_emp_status', 'employees', ['status'], unique=False)

    op.create_table(
        'public_holidays',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('date', sa.Date(), nullable=False, unique=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('clock_in', sa.DateTime(), nullable=True),
        sa.Column('clock_out', sa.DateTime(), nullable=True),
        sa.Column('status', ENUMS[0], nullable=False, server_default='present'),
        sa.Column('is_late', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('late_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('work_minutes', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('employee_id', 'date', name='uq_attendance_employee_date'),
    )
    op.create_index('ix_attendance_records_employee_id', 'attendance_records', ['employee_id'], unique=False)

    op.create_table(
        'leave_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('leave_type', sa.String(length=30), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('approved_by', sa.String(length=64), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_leave_requests_employee_id', 'leave_requests', ['employee_id'], unique=False)
    op.create_index('ix_leave_emp_window', 'leave_requests', ['employee_id', 'status', 'start_date', 'end_date'], unique=False)

    op.create_table(
        'overtime_policies',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('weekday_multiplier_1_2', sa.Numeric(5, 2), nullable=False, server_default='1.5'),
        sa.Column('weekday_multiplier_3plus', sa.Numeric(5, 2), nullable=False, server_default='2'),
        sa.Column('holiday_multiplier_1_8', sa.Numeric(5, 2), nullable=False, server_default='2'),
        sa.Column('holiday_multiplier_9_10', sa.Numeric(5, 2), nullable=False, server_default='3'),
        sa.Column('holiday_multiplier_11plus', sa.Numeric(5, 2), nullable=False, server_default='4'),
        sa.Column('max_hours_per_day', sa.Numeric(5, 2), nullable=False, server_default='3'),
        sa.Column('max_hours_per_week', sa.Numeric(5, 2), nullable=False, server_default='14'),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_overtime_policies_effective', 'overtime_policies', ['effective_from', 'effective_to'], unique=False)

    op.create_table(
        'overtime_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('status', ENUMS[1], nullable=False, server_default='pending'),
        sa.Column('is_holiday', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('multiplier', sa.Numeric(6, 2), nullable=True),
        sa.Column('calculated_overtime_pay', sa.Numeric(14, 2), nullable=True),
        sa.Column('approved_by', sa.String(length=64), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_overtime_requests_employee_id', 'overtime_requests', ['employee_id'], unique=False)
    op.create_index('ix_overtime_emp_date_status', 'overtime_requests', ['employee_id', 'date', 'status'], unique=False)

    op.create_table(
        'employee_salaries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('effective_date', sa.Date(), nullable=False),
        sa.Column('base_salary', sa.Numeric(14, 2), nullable=False),
        _money('transport_allowance'),
        _money('meal_allowance'),
        _money('position_allowance'),
        _money('housing_allowance'),
        _money('other_allowances'),
        sa.Column('bpjs_kesehatan_employee_rate', sa.Numeric(5, 2), nullable=False, server_default='1.0'),
        sa.Column('bpjs_kesehatan_employer_rate', sa.Numeric(5, 2), nullable=False, server_default='4.0'),
        sa.Column('bpjs_tk_employee_rate', sa.Numeric(5, 2), nullable=False, server_default='2.0'),
        sa.Column('bpjs_tk_employer_rate', sa.Numeric(5, 2), nullable=False, server_default='3.7'),
        sa.Column('ptkp_status', sa.String(length=8), nullable=False, server_default='TK/0'),
        sa.Column('npwp', sa.String(length=32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employee_id', 'effective_date', name='uq_emp_salary_effective'),
    )
    op.create_index('ix_employee_salaries_employee_id', 'employee_salaries', ['employee_id'], unique=False)
    # at most one active configuration per employee
    op.create_index(
        'uq_emp_salary_active', 'employee_salaries', ['employee_id'], unique=True,
        postgresql_where=sa.text('is_active'),
        sqlite_where=sa.text('is_active = 1'),
    )

    op.create_table(
        'ptkp_ter_mappings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ptkp_status', sa.String(length=8), nullable=False, unique=True),
        sa.Column('ter_category', sa.String(length=8), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'pph21_ter_rates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('category_code', sa.String(length=8), nullable=False),
        sa.Column('min_gross_income', sa.Numeric(16, 2), nullable=False),
        sa.Column('max_gross_income', sa.Numeric(16, 2), nullable=False),
        sa.Column('rate_percentage', sa.Numeric(7, 4), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_ter_rate_lookup', 'pph21_ter_rates', ['category_code', 'min_gross_income', 'max_gross_income'], unique=False)

    op.create_table(
        'pay_adjustments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=False),
        sa.Column('type', ENUMS[2], nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_pay_adjustments_employee_id', 'pay_adjustments', ['employee_id'], unique=False)
    op.create_index('ix_pay_adjustments_emp_period', 'pay_adjustments', ['employee_id', 'period'], unique=False)

    op.create_table(
        'monthly_attendance_summaries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='CASCADE'), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('total_working_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_present', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_late', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_late_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_absent', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_leave_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_overtime_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        _money('total_overtime_pay'),
        _money('deductions'),
        sa.Column('generated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employee_id', 'month', 'year', name='uq_attendance_summary_emp_month'),
    )
    op.create_index('ix_monthly_attendance_summaries_employee_id', 'monthly_attendance_summaries', ['employee_id'], unique=False)
    op.create_index('ix_attendance_summary_period', 'monthly_attendance_summaries', ['year', 'month'], unique=False)

    op.create_table(
        'payroll_runs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('status', ENUMS[3], nullable=False, server_default='draft'),
        sa.Column('total_employees', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_gross_salary', sa.Numeric(16, 2), nullable=False, server_default='0'),
        sa.Column('total_deductions', sa.Numeric(16, 2), nullable=False, server_default='0'),
        sa.Column('total_net_salary', sa.Numeric(16, 2), nullable=False, server_default='0'),
        sa.Column('generating', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('generated_by', sa.String(length=64), nullable=True),
        sa.Column('generated_at', sa.DateTime(), nullable=True),
        sa.Column('finalized_by', sa.String(length=64), nullable=True),
        sa.Column('finalized_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.String(length=64), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
    )
    # one live (non-cancelled) run per period
    op.create_index(
        'uq_payroll_runs_open_period', 'payroll_runs', ['month', 'year'], unique=True,
        postgresql_where=sa.text("status <> 'cancelled'"),
        sqlite_where=sa.text("status <> 'cancelled'"),
    )

    op.create_table(
        'payroll_details',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('payroll_run_id', sa.Integer(), sa.ForeignKey('payroll_runs.id'), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
        sa.Column('salary_id', sa.Integer(), sa.ForeignKey('employee_salaries.id'), nullable=True),
        sa.Column('working_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('present_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('late_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('late_minutes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('absent_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('leave_days', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('overtime_hours', sa.Numeric(8, 2), nullable=False, server_default='0'),
        *[_money(c) for c in (
            'base_salary', 'transport_allowance', 'meal_allowance', 'position_allowance',
            'housing_allowance', 'other_allowances', 'total_allowances', 'overtime_pay',
            'gross_salary', 'late_deduction', 'bpjs_kesehatan_employee', 'bpjs_tk_employee',
            'pph21', 'loan_deduction', 'other_deductions', 'total_deductions', 'net_salary',
            'bpjs_kesehatan_employer', 'bpjs_tk_employer',
        )],
        sa.Column('ptkp_status', sa.String(length=8), nullable=True),
        sa.Column('ter_category', sa.String(length=8), nullable=True),
        sa.Column('ter_rate', sa.Numeric(7, 4), nullable=True),
        sa.Column('tax_resolution', sa.String(length=20), nullable=True),
        sa.Column('payment_status', ENUMS[4], nullable=False, server_default='pending'),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('slip_generated', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('payroll_run_id', 'employee_id', name='uq_payroll_detail_run_employee'),
    )
    op.create_index('ix_payroll_details_payroll_run_id', 'payroll_details', ['payroll_run_id'], unique=False)
    op.create_index('ix_payroll_details_employee_id', 'payroll_details', ['employee_id'], unique=False)


def downgrade() -> None:
    for table in (
        'payroll_details', 'payroll_runs', 'monthly_attendance_summaries', 'pay_adjustments',
        'pph21_ter_rates', 'ptkp_ter_mappings', 'employee_salaries', 'overtime_requests',
        'overtime_policies', 'leave_requests', 'attendance_records', 'public_holidays', 'employees',
    ):
        op.drop_table(table)

    # Drop enum types if present
    for enum in ENUMS:
        try:
            enum.drop(op.get_bind(), checkfirst=True)
        except Exception:
            pass
