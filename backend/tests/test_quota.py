import uuid
from datetime import datetime, timedelta

import pytest

from genstudio.services.quota import QuotaEnforcer

from conftest import seed_artifacts as seed


@pytest.mark.asyncio
async def test_enforce_deletes_oldest_beyond_limit(quota, artifact_store, session_factory, object_store, user_id):
    ids = await seed(session_factory, object_store, user_id, 12)

    removed = await quota.enforce(user_id, "image", 10)

    assert removed == 2
    remaining = [a.id for a in await artifact_store.list_for_user(user_id, "image")]
    assert len(remaining) == 10
    assert ids[0] not in remaining and ids[1] not in remaining
    assert remaining[0] == ids[-1]
    assert len(object_store.objects) == 10


@pytest.mark.asyncio
async def test_enforce_under_limit_is_noop(quota, session_factory, object_store, user_id):
    await seed(session_factory, object_store, user_id, 3)
    assert await quota.enforce(user_id, "image", 10) == 0
    assert object_store.removed == []


@pytest.mark.asyncio
async def test_enforce_only_touches_one_user_and_kind(quota, artifact_store, session_factory, object_store, user_id):
    other_user = uuid.uuid4()
    await seed(session_factory, object_store, user_id, 4)
    await seed(session_factory, object_store, user_id, 4, kind="cutout")
    await seed(session_factory, object_store, other_user, 4)

    assert await quota.enforce(user_id, "image", 2) == 2

    assert len(await artifact_store.list_for_user(user_id, "image")) == 2
    assert len(await artifact_store.list_for_user(user_id, "cutout")) == 4
    assert len(await artifact_store.list_for_user(other_user, "image")) == 4


@pytest.mark.asyncio
async def test_enforce_never_trims_kept_artifact(quota, artifact_store, session_factory, object_store, user_id):
    # "kept" carries an older timestamp than the rest (clock skew between writers)
    kept = (await seed(session_factory, object_store, user_id, 1, start=datetime.utcnow() - timedelta(days=1)))[0]
    await seed(session_factory, object_store, user_id, 10)

    assert await quota.enforce(user_id, "image", 10, keep=kept) == 1

    remaining = [a.id for a in await artifact_store.list_for_user(user_id, "image")]
    assert kept in remaining
    assert len(remaining) == 10


@pytest.mark.asyncio
async def test_enforce_limit_zero_removes_everything(quota, artifact_store, session_factory, object_store, user_id):
    ids = await seed(session_factory, object_store, user_id, 3)
    assert await quota.enforce(user_id, "image", 0, keep=ids[-1]) == 3
    assert await artifact_store.list_for_user(user_id, "image") == []


@pytest.mark.asyncio
async def test_enforce_failure_is_swallowed(quota, artifact_store, session_factory, object_store, user_id):
    await seed(session_factory, object_store, user_id, 12)
    object_store.fail_remove = True

    assert await quota.enforce(user_id, "image", 10) == 0
    assert len(await artifact_store.list_for_user(user_id, "image")) == 12


@pytest.mark.asyncio
async def test_enforce_with_broken_metadata_store(broken_session_factory, object_store, user_id):
    assert await QuotaEnforcer(broken_session_factory, object_store).enforce(user_id, "image", 10) == 0


@pytest.mark.asyncio
async def test_blobs_that_fail_to_delete_keep_their_rows(quota, artifact_store, session_factory, object_store, user_id):
    ids = await seed(session_factory, object_store, user_id, 12)
    stuck = None

    async def partial_remove_many(keys):
        nonlocal stuck
        stuck = keys[0]
        for key in keys[1:]:
            object_store.objects.pop(key, None)
        return [stuck]

    object_store.remove_many = partial_remove_many

    assert await quota.enforce(user_id, "image", 10) == 1
    remaining = await artifact_store.list_for_user(user_id, "image")
    assert len(remaining) == 11
    assert stuck in [a.storage_path for a in remaining]
