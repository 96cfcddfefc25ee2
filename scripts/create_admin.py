# scripts/create_admin.py

"""
AST-LIS 관리자 계정을 생성하는 명령줄 도구입니다.

사용 예:
    python -m scripts.create_admin --username admin --email admin@lab.example
"""

import asyncio
import logging

import typer
from sqlmodel.ext.asyncio.session import AsyncSession

from app.core.database import AsyncSessionLocal, engine
from app.domains.usr import crud as usr_crud
from app.domains.usr import schemas as usr_schemas
from app.domains.usr.models import UserRole

logger = logging.getLogger(__name__)

cli = typer.Typer(help="AST-LIS 관리자 계정 관리 도구")

ROLE_CHOICES = {
    "admin": UserRole.ADMIN,
    "superuser": UserRole.SUPERUSER,
}


async def create_admin_user(db: AsyncSession, user_in: usr_schemas.UserCreate) -> bool:
    """
    관리자 계정을 생성합니다. 이메일 또는 사용자명이 이미 있으면 False를 반환합니다.
    """
    if user_in.email and await usr_crud.user.get_by_email(db, email=user_in.email):
        typer.secho(f"오류: 이미 존재하는 이메일입니다: {user_in.email}", fg=typer.colors.RED)
        return False

    if await usr_crud.user.get_by_username(db, username=user_in.username):
        typer.secho(f"오류: 이미 존재하는 사용자명입니다: {user_in.username}", fg=typer.colors.RED)
        return False

    await usr_crud.user.create(db, obj_in=user_in)
    return True


async def _run_creation(user_in: usr_schemas.UserCreate) -> bool:
    try:
        async with AsyncSessionLocal() as db:
            return await create_admin_user(db=db, user_in=user_in)
    finally:
        await engine.dispose()


@cli.command()
def main(
    username: str = typer.Option(
        ..., "--username", "-u",
        prompt="관리자 사용자명(ID)을 입력하세요",
        help="로그인 시 사용할 사용자명(ID)입니다.",
    ),
    email: str = typer.Option(
        ..., "--email", "-e",
        prompt="관리자 이메일을 입력하세요",
        help="관리자 계정의 이메일 주소입니다.",
    ),
    password: str = typer.Option(
        ..., "--password", "-p",
        prompt="관리자 비밀번호를 입력하세요",
        hide_input=True,
        confirmation_prompt=True,
        help="관리자 계정의 비밀번호입니다. (최소 8자 이상)",
    ),
    full_name: str = typer.Option("Lab Administrator", "--name", "-n", help="관리자의 이름입니다."),
    role: str = typer.Option("admin", "--role", "-r", help="부여할 역할 (admin 또는 superuser)"),
):
    """
    AST-LIS 애플리케이션의 관리자(Admin/Superuser) 계정을 생성합니다.
    """
    if len(password) < 8:
        typer.secho("오류: 비밀번호는 최소 8자 이상이어야 합니다.", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    user_role = ROLE_CHOICES.get(role.lower())
    if user_role is None:
        typer.secho(f"오류: 지원하지 않는 역할입니다: {role}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    user_in = usr_schemas.UserCreate(
        username=username,
        email=email,
        password=password,
        full_name=full_name,
        role=user_role,
    )

    if not asyncio.run(_run_creation(user_in)):
        raise typer.Exit(code=1)
    typer.secho(f"관리자 계정이 생성되었습니다: {username} ({user_role.name})", fg=typer.colors.GREEN)


if __name__ == "__main__":
    cli()
