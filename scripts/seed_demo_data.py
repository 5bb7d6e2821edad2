"""Seed idempotent demo data for local/non-production environments."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

import calico.modules  # noqa: F401
from calico.core.config import get_settings
from calico.core.database import SessionLocal, close_engine
from calico.core.enums import RoleEnum
from calico.core.security import create_access_token
from calico.modules.identity.models import User
from calico.modules.identity.repository import IdentityRepository
from calico.modules.scheduling.repository import SchedulingRepository

DEMO_ADMIN_EMAIL = "demo-admin@calico.dev"
DEMO_TUTOR_EMAILS = ("demo-tutor-a@calico.dev", "demo-tutor-b@calico.dev")
DEMO_STUDENT_EMAIL = "demo-student@calico.dev"

DEMO_COURSE = "ISIS3710"
DEMO_WINDOW_DAY_OFFSETS = (1, 2, 3)
# (start hour, end hour, end minute) per tutor; overlapping on purpose to show joint slots
DEMO_WINDOW_HOURS = ((9, 11, 30), (10, 12, 0))


@dataclass(slots=True)
class SeedStats:
    roles_created: int = 0
    users_created: int = 0
    users_updated: int = 0
    windows_created: int = 0
    tokens: dict[str, str] = field(default_factory=dict)


async def _ensure_roles(repository: IdentityRepository) -> int:
    created = 0
    for role_name in (RoleEnum.STUDENT, RoleEnum.TUTOR, RoleEnum.ADMIN):
        if await repository.get_role_by_name(role_name) is None:
            await repository.create_role(role_name)
            created += 1
    return created


async def _ensure_user(
    repository: IdentityRepository,
    *,
    email: str,
    display_name: str,
    role_name: RoleEnum,
) -> tuple[User, bool]:
    session = repository.session
    role = await repository.get_role_by_name(role_name)
    if role is None:
        raise RuntimeError(f"Role {role_name} was not found after ensure_roles")

    user = await repository.get_user_by_email(email)
    created = False
    if user is None:
        user = User(
            email=email,
            display_name=display_name,
            timezone="UTC",
            is_active=True,
            role_id=role.id,
        )
        session.add(user)
        created = True
    else:
        user.display_name = display_name
        user.role_id = role.id
        user.is_active = True

    await session.flush()
    await session.refresh(user, attribute_names=["role"])
    return user, created


async def _ensure_demo_windows(session: AsyncSession, tutors: list[User]) -> int:
    repository = SchedulingRepository(session)
    created = 0
    today = datetime.now(UTC).date()

    for tutor_number, (tutor, (start_hour, end_hour, end_minute)) in enumerate(zip(tutors, DEMO_WINDOW_HOURS)):
        for day_offset in DEMO_WINDOW_DAY_OFFSETS:
            target_date = today + timedelta(days=day_offset)
            start_at = datetime.combine(target_date, time(hour=start_hour, tzinfo=UTC))
            end_at = datetime.combine(target_date, time(hour=end_hour, minute=end_minute, tzinfo=UTC))
            _, window_created = await repository.upsert_window(
                f"demo-{tutor_number}-{target_date.isoformat()}",
                tutor_id=tutor.id,
                title=f"Tutoría {DEMO_COURSE}",
                course=DEMO_COURSE,
                location="Edificio ML, sala 512",
                start_at=start_at,
                end_at=end_at,
            )
            created += int(window_created)
    return created


async def _run_seed(*, allow_production: bool) -> SeedStats:
    settings = get_settings()
    app_env = settings.app_env.strip().lower()
    if app_env in {"production", "prod"} and not allow_production:
        raise RuntimeError(
            "Refusing to seed demo data in production. "
            "Re-run with --allow-production only if you are absolutely sure.",
        )

    stats = SeedStats()

    async with SessionLocal() as session:
        try:
            identity = IdentityRepository(session)
            stats.roles_created = await _ensure_roles(identity)

            users: list[tuple[User, bool]] = [
                await _ensure_user(identity, email=DEMO_ADMIN_EMAIL, display_name="Demo Admin", role_name=RoleEnum.ADMIN),
                await _ensure_user(
                    identity,
                    email=DEMO_STUDENT_EMAIL,
                    display_name="Demo Student",
                    role_name=RoleEnum.STUDENT,
                ),
            ]
            tutors: list[User] = []
            for number, email in enumerate(DEMO_TUTOR_EMAILS, start=1):
                tutor, created = await _ensure_user(
                    identity,
                    email=email,
                    display_name=f"Demo Tutor {number}",
                    role_name=RoleEnum.TUTOR,
                )
                users.append((tutor, created))
                tutors.append(tutor)

            stats.users_created = sum(created for _, created in users)
            stats.users_updated = len(users) - stats.users_created
            stats.windows_created = await _ensure_demo_windows(session, tutors)
            stats.tokens = {user.email: create_access_token(str(user.id)) for user, _ in users}

            await session.commit()
        except Exception:
            await session.rollback()
            raise

    return stats


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Seed idempotent demo data for Calico (users, tutor availability windows).",
    )
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow seeding even when APP_ENV is production/prod.",
    )
    return parser


def _print_summary(stats: SeedStats) -> None:
    print("Demo seed completed.")
    print(f"- Roles created: {stats.roles_created}")
    print(f"- Users created: {stats.users_created}")
    print(f"- Users updated: {stats.users_updated}")
    print(f"- Availability windows created: {stats.windows_created}")
    print("")
    print("Demo access tokens (non-production only):")
    for email, token in stats.tokens.items():
        print(f"- {email}: {token}")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    try:
        stats = asyncio.run(_run_seed(allow_production=args.allow_production))
    except Exception as exc:
        print(f"Demo seed failed: {exc}")
        return 1
    finally:
        asyncio.run(close_engine())

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
