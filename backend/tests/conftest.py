"""
Test fixtures and configuration for pytest.
"""

import os
import sys
import tempfile
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from cryptography.fernet import Fernet
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Settings are read once at import time; pin the test environment first.
TEST_ENCRYPTION_KEY = Fernet.generate_key().decode()
TEST_UPLOAD_DIR = tempfile.mkdtemp(prefix="chat-import-uploads-")
TEST_MAX_FILE_SIZE = 64 * 1024

os.environ.setdefault("APP_MODE", "dev")
os.environ["FILE_ENCRYPTION_KEY"] = TEST_ENCRYPTION_KEY
os.environ["IMPORT_UPLOAD_DIR"] = TEST_UPLOAD_DIR
os.environ["IMPORT_MAX_FILE_SIZE"] = str(TEST_MAX_FILE_SIZE)
os.environ["IMPORT_BATCH_SIZE"] = "2"
os.environ["IMPORT_RETRY_BASE_DELAY"] = "0"

from db.database import Base, get_db
from models.chat import Chat
from models.user import User
from services.auth import create_access_token
from services.file_encryption import FileEncryptor, KeyProvider

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

# NullPool: pytest-asyncio may hand each test its own event loop.
engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    # Import models to register them
    from models import chat, chat_import, message, user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def clean_upload_dir():
    """Every test starts and ends with an empty working directory."""
    for name in os.listdir(TEST_UPLOAD_DIR):
        os.remove(os.path.join(TEST_UPLOAD_DIR, name))
    yield
    for name in os.listdir(TEST_UPLOAD_DIR):
        os.remove(os.path.join(TEST_UPLOAD_DIR, name))


@pytest.fixture
def upload_dir() -> str:
    return TEST_UPLOAD_DIR


@pytest.fixture
def file_encryptor() -> FileEncryptor:
    return FileEncryptor(KeyProvider(TEST_ENCRYPTION_KEY))


# ============== Test Data Fixtures ==============


@pytest_asyncio.fixture
async def alice(db_session: AsyncSession) -> User:
    user = User(name="Alice")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def bob(db_session: AsyncSession) -> User:
    user = User(name="Bob")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def outsider(db_session: AsyncSession) -> User:
    user = User(name="Mallory")
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def couple_chat(db_session: AsyncSession, alice: User, bob: User) -> Chat:
    """A two-person chat between Alice and Bob."""
    chat = Chat(chat_name="Alice & Bob", participants=[alice, bob])
    db_session.add(chat)
    await db_session.commit()
    return chat


@pytest.fixture
def alice_headers(alice: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(alice.id)}"}


@pytest.fixture
def outsider_headers(outsider: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(outsider.id)}"}


@pytest.fixture
def sample_csv() -> bytes:
    """Generic export: one translated row, one untranslated row."""
    return (
        "date,timestamp,sender,message,translated_message\n"
        "07/04/25,7:52 am,Alice,Hello,Hi\n"
        "07/04/25,8:05 pm,Bob,,Good evening\n"
    ).encode("utf-8")


# ============== Client Fixtures ==============


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession, file_encryptor: FileEncryptor
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database override."""
    from main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    # ASGITransport does not run the lifespan.
    app.state.file_encryptor = file_encryptor

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
