from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .absence_fines.mysql_absence_fine_repository import MySQLAbsenceFineRepository
from .absence_fines.repository import AbsenceFineRepository
from .absence_fines.service import AbsenceFineService
from .core.constants import DEFAULT_MONTHLY_FEE
from .database.connection import DBConfig, DatabaseConnection
from .fees.mysql_fee_repository import MySQLFeeRepository
from .fees.repository import FeeRepository
from .fees.service import FeeService
from .students.mysql_student_repository import MySQLStudentRepository
from .students.repository import StudentRepository
from .users.mysql_user_repository import MySQLUserRepository
from .users.repository import UserRepository
from .users.service import AuthService


@dataclass(frozen=True)
class Container:
    users_repo: UserRepository
    students_repo: StudentRepository
    fees_repo: FeeRepository
    absence_fines_repo: AbsenceFineRepository

    auth_service: AuthService
    fee_service: FeeService
    absence_fine_service: AbsenceFineService


def build_services(
    *,
    users_repo: UserRepository,
    students_repo: StudentRepository,
    fees_repo: FeeRepository,
    absence_fines_repo: AbsenceFineRepository,
    default_monthly_fee: Decimal = DEFAULT_MONTHLY_FEE,
    **service_kwargs,
) -> Container:
    """Wire services over any repository implementations (MySQL in the app, fakes in tests)."""
    return Container(
        users_repo=users_repo,
        students_repo=students_repo,
        fees_repo=fees_repo,
        absence_fines_repo=absence_fines_repo,
        auth_service=AuthService(users_repo, students_repo),
        fee_service=FeeService(fees_repo, students_repo, default_monthly_fee=default_monthly_fee, **service_kwargs),
        absence_fine_service=AbsenceFineService(absence_fines_repo, students_repo),
    )


def build_container(*, db_config: dict, default_monthly_fee: Decimal = DEFAULT_MONTHLY_FEE) -> Container:
    conn = DatabaseConnection(DBConfig.from_settings(db_config))

    return build_services(
        users_repo=MySQLUserRepository(conn),
        students_repo=MySQLStudentRepository(conn),
        fees_repo=MySQLFeeRepository(conn),
        absence_fines_repo=MySQLAbsenceFineRepository(conn),
        default_monthly_fee=default_monthly_fee,
    )
