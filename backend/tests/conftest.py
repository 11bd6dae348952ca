"""
CapstoneFlow - Test Configuration and Fixtures
"""
import os
from typing import AsyncGenerator, Callable, Awaitable
import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from faker import Faker

# Set testing environment
os.environ['ENVIRONMENT'] = 'testing'
os.environ['DATABASE_URL'] = 'sqlite+aiosqlite:///./test_capstoneflow.db'
os.environ['JWT_SECRET_KEY'] = 'test-jwt-secret-key-for-testing'
os.environ['STATUS_TRANSITION_POLICY'] = 'open'

from app.main import app
from app.core.database import Base, get_db
from app.core.security import create_access_token
from app.models.user import User, UserRole
from app.models.project import Project, ProjectMember, ProjectType, ProjectStatus
from app.services.locking import EntityLockRegistry

fake = Faker()

# Test database setup
TEST_DATABASE_URL = 'sqlite+aiosqlite:///./test_capstoneflow.db'
test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest.fixture(scope='function')
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test"""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database override"""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def session_factory(db_session: AsyncSession) -> async_sessionmaker:
    """Extra sessions on the test database, for simulating separate requests"""
    return TestSessionLocal


@pytest.fixture
def locks() -> EntityLockRegistry:
    """A private lock registry so tests never share lock state"""
    return EntityLockRegistry()


# ==================== Users ====================

@pytest.fixture
def make_user(db_session: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Factory for persisted users of any role"""
    async def _make(role: UserRole = UserRole.STUDENT, **overrides) -> User:
        user = User(
            email=overrides.pop('email', fake.unique.email()),
            full_name=overrides.pop('full_name', fake.name()),
            department=overrides.pop('department', 'Computer Science'),
            role=role,
            is_active=overrides.pop('is_active', True),
            **overrides,
        )
        db_session.add(user)
        await db_session.commit()
        return user
    return _make


@pytest.fixture
async def student(make_user) -> User:
    return await make_user(UserRole.STUDENT)


@pytest.fixture
async def other_student(make_user) -> User:
    return await make_user(UserRole.STUDENT)


@pytest.fixture
async def third_student(make_user) -> User:
    return await make_user(UserRole.STUDENT)


@pytest.fixture
async def supervisor(make_user) -> User:
    return await make_user(UserRole.SUPERVISOR, capacity=10)


@pytest.fixture
async def other_supervisor(make_user) -> User:
    return await make_user(UserRole.SUPERVISOR, capacity=10)


@pytest.fixture
async def super_admin(make_user) -> User:
    return await make_user(UserRole.SUPER_ADMIN)


@pytest.fixture
def auth_headers_for() -> Callable[[User], dict]:
    """Bearer headers for a user, as the identity provider would issue them"""
    def _headers(user: User) -> dict:
        token = create_access_token({'sub': str(user.id), 'role': user.role.value})
        return {'Authorization': f'Bearer {token}'}
    return _headers


# ==================== Projects ====================

@pytest.fixture
def make_project(db_session: AsyncSession) -> Callable[..., Awaitable[Project]]:
    """Factory that writes project rows directly, bypassing the workflow rules"""
    async def _make(
        supervisor: User = None,
        assigned_student: User = None,
        members=None,
        head: User = None,
        status: ProjectStatus = ProjectStatus.PENDING,
        **overrides,
    ) -> Project:
        members = members or []
        project = Project(
            title=overrides.pop('title', fake.sentence(nb_words=4)),
            description=overrides.pop('description', fake.paragraph()),
            project_type=ProjectType.GROUP if members else ProjectType.INDIVIDUAL,
            status=status,
            supervisor_id=supervisor.id if supervisor else None,
            assigned_student_id=assigned_student.id if assigned_student else None,
            project_head_id=head.id if head else None,
            members=[ProjectMember(user_id=m.id, position=i) for i, m in enumerate(members)],
            tasks=[],
            **overrides,
        )
        db_session.add(project)
        await db_session.commit()
        return project
    return _make
