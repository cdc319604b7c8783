"""
Ledgerline Payroll - Test Configuration

Pytest fixtures and configuration.
"""

from decimal import Decimal
from typing import AsyncGenerator, List
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, enable_sqlite_savepoints, get_async_session
from app.models.payroll import Employee, PayrollFrequency
from main import app


# In-memory SQLite shared by every session of a test
TEST_DATABASE_URL = "sqlite+aiosqlite://"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)
enable_sqlite_savepoints(test_engine)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest.fixture
def entity_id() -> UUID:
    """Company the test data belongs to."""
    return uuid4()


@pytest.fixture
def auth_headers(entity_id: UUID) -> dict:
    """Gateway headers selecting the test company and acting user."""
    return {"X-Entity-ID": str(entity_id), "X-User-ID": str(uuid4())}


async def _add_employee(
    db_session: AsyncSession,
    entity_id: UUID,
    number: str,
    first_name: str,
    last_name: str,
    base_salary: str,
    is_active: bool = True,
) -> Employee:
    employee = Employee(
        id=uuid4(),
        entity_id=entity_id,
        employee_number=number,
        first_name=first_name,
        last_name=last_name,
        trn=f"10{number[-1]}-234-56{number[-1]}",
        base_salary=Decimal(base_salary),
        pay_frequency=PayrollFrequency.MONTHLY,
        is_active=is_active,
    )
    db_session.add(employee)
    await db_session.commit()
    return employee


@pytest_asyncio.fixture
async def employees(db_session: AsyncSession, entity_id: UUID) -> List[Employee]:
    """Two active employees: J$500,000 and J$100,000 a month."""
    return [
        await _add_employee(db_session, entity_id, "EMP-001", "Marcia", "Campbell", "500000.00"),
        await _add_employee(db_session, entity_id, "EMP-002", "Devon", "Brown", "100000.00"),
    ]


@pytest_asyncio.fixture
async def inactive_employee(db_session: AsyncSession, entity_id: UUID) -> Employee:
    """An employee who has left the company."""
    return await _add_employee(
        db_session, entity_id, "EMP-009", "Andre", "Williams", "200000.00", is_active=False,
    )
