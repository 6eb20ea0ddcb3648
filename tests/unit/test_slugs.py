"""Unit tests for payment link slug issuance"""

import re
import pytest
from sqlalchemy.orm import Session
from splitpay_gateway.domain.exceptions import SlugGenerationError
from splitpay_gateway.domain.slugs import generate_slug_candidate
from splitpay_gateway.infrastructure.database.models import Payer
from splitpay_gateway.services.reconciliation import create_collection, issue_unique_slug


def test_slug_candidate_format():
    slug = generate_slug_candidate("pay")
    assert re.fullmatch(r"pay-[a-z0-9]{8}", slug)


def test_slug_candidates_differ():
    assert len({generate_slug_candidate() for _ in range(50)}) == 50


def test_issue_unique_slug_skips_reserved_candidates(db: Session):
    candidates = iter(["pay-aaaa", "pay-aaaa", "pay-bbbb"])
    reserved = {"pay-aaaa"}

    slug = issue_unique_slug(db, reserved=reserved, generator=lambda prefix: next(candidates))

    assert slug == "pay-bbbb"
    assert reserved == {"pay-aaaa", "pay-bbbb"}


def test_forced_collision_falls_back_to_distinct_slug(db: Session):
    """A generator stuck on one value still yields distinct, persisted-unique slugs"""
    calls = []

    def stuck_generator(prefix: str) -> str:
        calls.append(prefix)
        return "pay-fixed"

    collection = create_collection(
        db, title="Stuck generator", total_amount=300, num_payers=3, slug_generator=stuck_generator
    )

    slugs = [p.pay_link_slug for p in collection.payers]
    assert slugs[0] == "pay-fixed"
    assert len(set(slugs)) == 3
    for fallback in slugs[1:]:
        assert re.fullmatch(r"pay-\d+-[a-z0-9]{8}", fallback)
    # 1 accepted candidate + 5 bounded retries for each of the two colliding payers
    assert len(calls) == 1 + 5 + 5
    assert db.query(Payer).filter(Payer.pay_link_slug == "pay-fixed").count() == 1


def test_existing_slug_in_store_is_not_reissued(db: Session):
    first = create_collection(db, title="First", total_amount=100, num_payers=1, slug_generator=lambda p: "pay-taken")
    assert first.payers[0].pay_link_slug == "pay-taken"

    slug = issue_unique_slug(db, generator=lambda p: "pay-taken", max_attempts=2)
    assert slug != "pay-taken"


def test_issue_unique_slug_raises_when_fallback_collides(db: Session, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        "splitpay_gateway.services.reconciliation.generate_slug_candidate", lambda prefix: "pay-same"
    )
    with pytest.raises(SlugGenerationError):
        issue_unique_slug(db, reserved={"pay-same"}, generator=lambda p: "pay-same", max_attempts=3)
