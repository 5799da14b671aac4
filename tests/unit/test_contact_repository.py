from unittest.mock import AsyncMock

import pytest

from localedge.repositories import business_repository
from localedge.repositories.business_repository import ContactRepository


@pytest.mark.asyncio
async def test_set_opted_out_stamps_the_contact(monkeypatch):
    execute = AsyncMock(return_value=1)
    monkeypatch.setattr(business_repository, "execute_query", execute)

    await ContactRepository.set_opted_out("contact-1")

    query, params = execute.await_args.args
    assert "opted_out = true" in query
    assert "opted_out_at = NOW()" in query
    assert params == ("contact-1",)
