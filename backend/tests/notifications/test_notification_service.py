from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncGenerator
from datetime import date, datetime, timezone
from typing import Any
from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.src.contracts.models import (
    Base,
    Game,
    InfoSource,
    InfoSourceType,
    NotificationDraft,
    NotificationRead,
    NotificationType,
    User,
    UserState,
)
from backend.src.creators import DEFAULT_CREATORS
from backend.src.errors import JobSchemaError, SourceNotFoundError
from backend.src.notifications.repository import NotificationRepository
from backend.src.notifications.service import NotificationService
from backend.src.sources.repository import SourceRepository

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


class RecordingMailService:
    def __init__(self, result: bool = True, error: Exception | None = None) -> None:
        self.sent: list[tuple[str, NotificationRead]] = []
        self._result = result
        self._error = error

    async def send(self, to_address: str, notification: NotificationRead) -> bool:
        self.sent.append((to_address, notification))
        if self._error is not None:
            raise self._error
        return self._result


class ExplodingCreator:
    name = "exploding"
    supported_types = frozenset(InfoSourceType)

    def detect(self, source_type, previous, current, *, today: date) -> NotificationDraft | None:
        raise RuntimeError("creator bug")


async def insert_source(
    session_factory: async_sessionmaker[AsyncSession],
    source_type: InfoSourceType = InfoSourceType.STEAM,
    email: str | None = "player@example.com",
    enable_email_notifications: bool = True,
    game_name: str | None = "Hades II",
) -> uuid.UUID:
    async with session_factory() as session:
        user = User(
            id=uuid.uuid4(),
            email=email,
            enable_email_notifications=enable_email_notifications,
            interested_in_sources=[source_type.value],
            country="DE",
            state=UserState.REGISTERED,
        )
        game = Game(id=uuid.uuid4(), search="hades", name=game_name, user_id=user.id)
        source = InfoSource(
            id=uuid.uuid4(),
            type=source_type,
            remote_game_id="1145350",
            disabled=False,
            data=None,
            game_id=game.id,
        )
        session.add_all([user, game, source])
        await session.commit()
        return source.id


def _steam_data(
    final: int = 6000,
    coming_soon: bool = False,
    release_date: str = "2024-01-01",
    disabled: bool = False,
) -> dict[str, Any]:
    return {
        "id": "1145350",
        "fullName": "Hades II",
        "storeUrl": "https://store.steampowered.com/app/1145350",
        "thumbnailUrl": "https://cdn.steam.com/1145350/header.jpg",
        "disabled": disabled,
        "releaseDate": {"comingSoon": coming_soon, "date": release_date},
        "priceInformation": {"initial": 6000, "final": final, "discountPercentage": 0},
    }


def _make_service(
    session: AsyncSession,
    mail: RecordingMailService,
    creators: list | tuple = DEFAULT_CREATORS,
    lookup_timeout_seconds: float = 5.0,
) -> NotificationService:
    return NotificationService(
        creators,
        mail,
        session,
        clock=lambda: NOW,
        lookup_timeout_seconds=lookup_timeout_seconds,
    )


async def _stored(session_factory: async_sessionmaker[AsyncSession], source_id: uuid.UUID) -> list:
    async with session_factory() as session:
        return await NotificationRepository(session).list_for_source(source_id)


# ── Detection and persistence ────────────────────────────────────────────────


class TestCreateNotifications:
    @pytest.mark.asyncio
    async def test_price_drop_is_persisted_and_mailed(self, session_factory) -> None:
        source_id = await insert_source(session_factory)
        mail = RecordingMailService()

        async with session_factory() as session:
            created = await _make_service(session, mail).create_notifications(
                source_id, _steam_data(final=6000), _steam_data(final=4800)
            )

        assert len(created) == 1
        assert created[0].type == NotificationType.GAME_REDUCED
        assert created[0].data["discountPercentage"] == 20
        assert created[0].created_at == NOW

        stored = await _stored(session_factory, source_id)
        assert [n.type for n in stored] == [NotificationType.GAME_REDUCED]

        assert len(mail.sent) == 1
        address, read = mail.sent[0]
        assert address == "player@example.com"
        assert read.game_name == "Hades II"
        assert read.source_type == InfoSourceType.STEAM
        assert read.payload == {"oldPrice": 6000, "newPrice": 4800, "discountPercentage": 20}

    @pytest.mark.asyncio
    async def test_unchanged_snapshot_creates_nothing(self, session_factory) -> None:
        source_id = await insert_source(session_factory)
        mail = RecordingMailService()

        async with session_factory() as session:
            created = await _make_service(session, mail).create_notifications(
                source_id, _steam_data(), _steam_data()
            )

        assert created == []
        assert mail.sent == []
        assert await _stored(session_factory, source_id) == []

    @pytest.mark.asyncio
    async def test_several_creators_fire_for_one_pair(self, session_factory) -> None:
        source_id = await insert_source(session_factory)

        async with session_factory() as session:
            created = await _make_service(session, RecordingMailService()).create_notifications(
                source_id,
                _steam_data(final=6000, coming_soon=True, release_date="2030-01-01"),
                _steam_data(final=3000, coming_soon=True, release_date="2030-06-01"),
            )

        assert sorted(n.type.value for n in created) == [
            NotificationType.GAME_REDUCED.value,
            NotificationType.RELEASE_DATE_CHANGED.value,
        ]

    @pytest.mark.asyncio
    async def test_release_transition_only_notifies_release(self, session_factory) -> None:
        source_id = await insert_source(session_factory)

        async with session_factory() as session:
            created = await _make_service(session, RecordingMailService()).create_notifications(
                source_id,
                _steam_data(coming_soon=True, release_date="2030-01-01"),
                _steam_data(coming_soon=False, release_date="2024-01-01"),
            )

        assert [n.type for n in created] == [NotificationType.GAME_RELEASED]

    @pytest.mark.asyncio
    async def test_first_snapshot_is_a_new_store_entry(self, session_factory) -> None:
        source_id = await insert_source(session_factory)

        async with session_factory() as session:
            created = await _make_service(session, RecordingMailService()).create_notifications(
                source_id, None, _steam_data()
            )

        assert [n.type for n in created] == [NotificationType.NEW_STORE_ENTRY]

    @pytest.mark.asyncio
    async def test_game_name_falls_back_to_store_name(self, session_factory) -> None:
        source_id = await insert_source(session_factory, game_name=None)
        mail = RecordingMailService()

        async with session_factory() as session:
            await _make_service(session, mail).create_notifications(source_id, None, _steam_data())

        assert mail.sent[0][1].game_name == "Hades II"


# ── Idempotence ───────────────────────────────────────────────────────────────


class TestIdempotence:
    @pytest.mark.asyncio
    async def test_retried_job_does_not_duplicate(self, session_factory) -> None:
        source_id = await insert_source(session_factory)
        mail = RecordingMailService()

        async with session_factory() as session:
            first = await _make_service(session, mail).create_notifications(
                source_id, _steam_data(final=6000), _steam_data(final=4800)
            )
        async with session_factory() as session:
            second = await _make_service(session, mail).create_notifications(
                source_id, _steam_data(final=6000), _steam_data(final=4800)
            )

        assert len(first) == 1
        assert second == []
        assert len(await _stored(session_factory, source_id)) == 1
        assert len(mail.sent) == 1

    @pytest.mark.asyncio
    async def test_different_payload_is_a_new_notification(self, session_factory) -> None:
        source_id = await insert_source(session_factory)

        async with session_factory() as session:
            await _make_service(session, RecordingMailService()).create_notifications(
                source_id, _steam_data(final=6000), _steam_data(final=4800)
            )
        async with session_factory() as session:
            second = await _make_service(session, RecordingMailService()).create_notifications(
                source_id, _steam_data(final=4800), _steam_data(final=3000)
            )

        assert len(second) == 1
        assert len(await _stored(session_factory, source_id)) == 2

    @pytest.mark.asyncio
    async def test_reenabled_source_after_first_entry(self, session_factory) -> None:
        source_id = await insert_source(session_factory)

        async with session_factory() as session:
            first = await _make_service(session, RecordingMailService()).create_notifications(
                source_id, None, _steam_data()
            )
        async with session_factory() as session:
            second = await _make_service(session, RecordingMailService()).create_notifications(
                source_id, _steam_data(disabled=True), _steam_data(disabled=False)
            )

        assert [n.type for n in first] == [NotificationType.NEW_STORE_ENTRY]
        assert [n.type for n in second] == [NotificationType.NEW_STORE_ENTRY]
        assert len(await _stored(session_factory, source_id)) == 2

    @pytest.mark.asyncio
    async def test_repeated_sale_in_later_run(self, session_factory) -> None:
        source_id = await insert_source(session_factory)
        mail = RecordingMailService()
        runs = [
            ("job-1", 6000, 4800),
            ("job-2", 4800, 6000),
            ("job-3", 6000, 4800),
        ]

        created = []
        for run_key, old_price, new_price in runs:
            async with session_factory() as session:
                created.append(
                    await _make_service(session, mail).create_notifications(
                        source_id,
                        _steam_data(final=old_price),
                        _steam_data(final=new_price),
                        run_key=run_key,
                    )
                )

        assert [len(batch) for batch in created] == [1, 0, 1]
        stored = await _stored(session_factory, source_id)
        assert [n.type for n in stored] == [NotificationType.GAME_REDUCED] * 2
        assert len(mail.sent) == 2

    @pytest.mark.asyncio
    async def test_same_run_key_is_not_duplicated(self, session_factory) -> None:
        source_id = await insert_source(session_factory)

        for _ in range(2):
            async with session_factory() as session:
                await _make_service(session, RecordingMailService()).create_notifications(
                    source_id, _steam_data(final=6000), _steam_data(final=4800), run_key="job-1"
                )

        assert len(await _stored(session_factory, source_id)) == 1


# ── Failure isolation ────────────────────────────────────────────────────────


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_failing_creator_does_not_block_others(self, session_factory) -> None:
        source_id = await insert_source(session_factory)
        creators = [ExplodingCreator(), *DEFAULT_CREATORS]

        async with session_factory() as session:
            created = await _make_service(session, RecordingMailService(), creators).create_notifications(
                source_id, _steam_data(final=6000), _steam_data(final=4800)
            )

        assert [n.type for n in created] == [NotificationType.GAME_REDUCED]
        assert len(await _stored(session_factory, source_id)) == 1

    @pytest.mark.asyncio
    async def test_mail_exception_keeps_notification(self, session_factory) -> None:
        source_id = await insert_source(session_factory)
        mail = RecordingMailService(error=RuntimeError("smtp down"))

        async with session_factory() as session:
            created = await _make_service(session, mail).create_notifications(
                source_id, _steam_data(final=6000), _steam_data(final=4800)
            )

        assert len(created) == 1
        assert len(mail.sent) == 1
        stored = await _stored(session_factory, source_id)
        assert [n.id for n in stored] == [created[0].id]

    @pytest.mark.asyncio
    async def test_undelivered_mail_keeps_notification(self, session_factory) -> None:
        source_id = await insert_source(session_factory)
        mail = RecordingMailService(result=False)

        async with session_factory() as session:
            created = await _make_service(session, mail).create_notifications(
                source_id, None, _steam_data()
            )

        assert len(created) == 1
        assert len(await _stored(session_factory, source_id)) == 1


# ── Delivery rules ────────────────────────────────────────────────────────────


class TestDelivery:
    @pytest.mark.asyncio
    async def test_no_mail_when_disabled(self, session_factory) -> None:
        source_id = await insert_source(session_factory, enable_email_notifications=False)
        mail = RecordingMailService()

        async with session_factory() as session:
            created = await _make_service(session, mail).create_notifications(
                source_id, None, _steam_data()
            )

        assert len(created) == 1
        assert mail.sent == []

    @pytest.mark.asyncio
    async def test_no_mail_without_address(self, session_factory) -> None:
        source_id = await insert_source(session_factory, email=None)
        mail = RecordingMailService()

        async with session_factory() as session:
            await _make_service(session, mail).create_notifications(source_id, None, _steam_data())

        assert mail.sent == []


# ── Fatal errors ──────────────────────────────────────────────────────────────


class TestFatalErrors:
    @pytest.mark.asyncio
    async def test_unknown_source(self, session_factory) -> None:
        async with session_factory() as session:
            with pytest.raises(SourceNotFoundError):
                await _make_service(session, RecordingMailService()).create_notifications(
                    uuid.uuid4(), None, _steam_data()
                )

    @pytest.mark.asyncio
    async def test_snapshot_shape_mismatch(self, session_factory) -> None:
        source_id = await insert_source(session_factory)

        async with session_factory() as session:
            with pytest.raises(JobSchemaError):
                await _make_service(session, RecordingMailService()).create_notifications(
                    source_id, None, {"id": "1145350", "fullName": "Hades II"}
                )

    @pytest.mark.asyncio
    async def test_lookup_timeout(self, session_factory) -> None:
        async def slow_lookup(self, source_id):
            await asyncio.sleep(1)

        async with session_factory() as session:
            with patch.object(SourceRepository, "get_source_with_owner", slow_lookup):
                with pytest.raises(asyncio.TimeoutError):
                    await _make_service(
                        session, RecordingMailService(), lookup_timeout_seconds=0.01
                    ).create_notifications(uuid.uuid4(), None, _steam_data())
