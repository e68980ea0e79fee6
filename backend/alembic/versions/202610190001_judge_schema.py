"""judge schema: problems, test cases, code templates, submissions

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "problems",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("ref", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("function_params", sa.JSON(), nullable=False),
        sa.Column("return_type", sa.String(length=50), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("ref"),
    )
    op.create_index("ix_problems_id", "problems", ["id"])

    op.create_table(
        "problem_test_cases",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("problem_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("input", sa.JSON(), nullable=False),
        sa.Column("expected_output", sa.JSON(), nullable=True),
        sa.Column("is_sample", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(["problem_id"], ["problems.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_problem_test_cases_id", "problem_test_cases", ["id"])
    op.create_index("idx_problem_test_cases_problem", "problem_test_cases", ["problem_id"])

    op.create_table(
        "code_templates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("problem_id", sa.Integer(), nullable=False),
        sa.Column("language", sa.String(length=20), nullable=False),
        sa.Column("wrapper_code", sa.Text(), nullable=False),
        sa.ForeignKeyConstraint(["problem_id"], ["problems.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("problem_id", "language", name="uq_code_templates_problem_language"),
    )
    op.create_index("ix_code_templates_id", "code_templates", ["id"])

    op.create_table(
        "submissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("problem_ref", sa.String(length=64), nullable=False),
        sa.Column("language", sa.String(length=20), nullable=False),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("verdict", sa.String(length=32), nullable=False, server_default="pending"),
        sa.Column("test_cases_passed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_test_cases", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("execution_time", sa.Float(), nullable=True),
        sa.Column("memory_used", sa.Integer(), nullable=True),
        sa.Column("judge_output", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("execution_time >= 0", name="chk_execution_time"),
        sa.CheckConstraint("memory_used >= 0", name="chk_memory_used"),
        sa.CheckConstraint(
            "verdict IN ('pending', 'accepted', 'wrong_answer', 'time_limit_exceeded', "
            "'compile_error', 'runtime_error')",
            name="chk_verdict",
        ),
    )
    op.create_index("ix_submissions_id", "submissions", ["id"])
    op.create_index("idx_submissions_problem", "submissions", ["problem_ref"])
    op.create_index("idx_submissions_verdict", "submissions", ["verdict"])
    op.create_index("idx_submissions_created_at", "submissions", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_submissions_created_at", table_name="submissions")
    op.drop_index("idx_submissions_verdict", table_name="submissions")
    op.drop_index("idx_submissions_problem", table_name="submissions")
    op.drop_index("ix_submissions_id", table_name="submissions")
    op.drop_table("submissions")
    op.drop_index("ix_code_templates_id", table_name="code_templates")
    op.drop_table("code_templates")
    op.drop_index("idx_problem_test_cases_problem", table_name="problem_test_cases")
    op.drop_index("ix_problem_test_cases_id", table_name="problem_test_cases")
    op.drop_table("problem_test_cases")
    op.drop_index("ix_problems_id", table_name="problems")
    op.drop_table("problems")
