"""Tests for identity resolution against a temp SQLite catalog."""

import json
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from affiliate_catalog.core.schema import RawExtraction
from affiliate_catalog.db.models import ProductDB, ProductPerformerDB, ProviderSourceDB
from affiliate_catalog.db.repositories import (
    PerformerRepository,
    ProductRepository,
    ProviderSourceRepository,
)
from affiliate_catalog.ingestion.cache import RunCache
from affiliate_catalog.ingestion.identifiers import IdentifierNormalizer
from affiliate_catalog.ingestion.performers import PerformerValidator
from affiliate_catalog.ingestion.registry import ProviderRegistry
from affiliate_catalog.ingestion.resolver import IdentityResolver, ResolutionResult

SHIPPED_CONFIG = Path(__file__).resolve().parents[1] / "config" / "providers.yaml"


@pytest.fixture
def cache() -> RunCache:
    return RunCache()


@pytest.fixture
def resolver(
    session: Session,
    identifiers: IdentifierNormalizer,
    registry: ProviderRegistry,
    cache: RunCache,
) -> IdentityResolver:
    return IdentityResolver(session, identifiers, PerformerValidator(), registry, cache=cache)


def _extraction(**overrides) -> RawExtraction:
    data = {
        "provider_name": "fanza",
        "provider_code": "ssis00865",
        "title": "新人NO.1 STYLE デビュー作品",
        "description": "専属女優のデビュー作。",
        "price": 2980,
        "performer_names": ["三上　悠亜", "FANZA", "SSIS-865"],
        "release_date": "2023-09-19",
        "duration_minutes": 150,
        "thumbnail_url": "https://pics.example.com/ssis865.jpg",
        "affiliate_url": "https://al.dmm.co.jp/?lurl=ssis00865",
    }
    data.update(overrides)
    return RawExtraction(**data)


class TestProductIdentity:
    """Tests for product upserts."""

    def test_new_then_existing(self, resolver: IdentityResolver, session: Session) -> None:
        """Test that resolving the same extraction is new exactly once."""
        first = resolver.resolve(_extraction())
        session.commit()
        second = resolver.resolve(_extraction())
        session.commit()

        assert first.is_new_product is True
        assert second.is_new_product is False
        assert second.product_id == first.product_id
        assert first.normalized_product_id == "SSIS-865"
        assert ProductRepository(session).count() == 1

    def test_cross_provider_spellings_share_product(
        self, resolver: IdentityResolver, session: Session
    ) -> None:
        """Test that two providers selling one release converge on one product."""
        fanza = resolver.resolve(_extraction())
        mgs = resolver.resolve(_extraction(provider_name="mgs", provider_code="SSIS-865", price=2780))
        session.commit()

        assert mgs.product_id == fanza.product_id
        assert mgs.is_new_product is False
        assert mgs.provider_source_id != fanza.provider_source_id

        sources = ProviderSourceRepository(session).get_by_product_id(fanza.product_id)
        assert {s.provider_name for s in sources} == {"fanza", "mgs"}

    def test_provider_scoped_codes_do_not_merge(
        self, resolver: IdentityResolver, session: Session
    ) -> None:
        """Test that provider-scoped codes never collide with label codes."""
        label = resolver.resolve(_extraction())
        scoped = resolver.resolve(
            _extraction(provider_name="sokmil", provider_code="270351", performer_names=[])
        )
        session.commit()

        assert scoped.normalized_product_id == "sokmil-270351"
        assert scoped.product_id != label.product_id

    def test_provider_scoped_families_do_not_merge_across_sites(self, session: Session) -> None:
        """Test that two sites with the same date-number code keep separate products."""
        shipped = ProviderRegistry()
        shipped.load_config(SHIPPED_CONFIG)
        resolver = IdentityResolver(
            session,
            IdentifierNormalizer.from_registry(shipped),
            PerformerValidator(),
            shipped,
            cache=RunCache(),
        )

        caribbean = resolver.resolve(
            _extraction(provider_name="caribbean", provider_code="010124_001", performer_names=[])
        )
        pondo = resolver.resolve(
            _extraction(provider_name="1pondo", provider_code="010124_001", performer_names=[])
        )
        session.commit()

        assert caribbean.normalized_product_id == "caribbean-010124_001"
        assert pondo.normalized_product_id == "1pondo-010124_001"
        assert pondo.is_new_product is True
        assert pondo.product_id != caribbean.product_id
        assert ProductRepository(session).count() == 2

    def test_update_keeps_fields_missing_from_later_extraction(
        self, resolver: IdentityResolver, session: Session
    ) -> None:
        """Test that a sparse re-crawl refreshes the title but keeps known fields."""
        first = resolver.resolve(_extraction())
        session.commit()

        resolver.resolve(
            _extraction(
                title="新人NO.1 STYLE デビュー作品【4K】",
                description="",
                duration_minutes=None,
                thumbnail_url=None,
                release_date=None,
            )
        )
        session.commit()

        product = session.get(ProductDB, first.product_id)
        session.refresh(product)
        assert product.title == "新人NO.1 STYLE デビュー作品【4K】"
        assert product.description == "専属女優のデビュー作。"
        assert product.duration_minutes == 150
        assert product.thumbnail_url == "https://pics.example.com/ssis865.jpg"
        assert product.release_date == date(2023, 9, 19)

    def test_title_is_sanitized(self, resolver: IdentityResolver, session: Session) -> None:
        """Test that markup is stripped before persisting."""
        result = resolver.resolve(_extraction(title="<b>新人NO.1</b>   STYLE"))
        session.commit()

        product = session.get(ProductDB, result.product_id)
        assert product.title == "新人NO.1 STYLE"

    def test_sample_videos_and_translations_stored(
        self, resolver: IdentityResolver, session: Session
    ) -> None:
        """Test that list and dict fields are stored as JSON."""
        result = resolver.resolve(
            _extraction(
                sample_video_urls=["https://cc3001.example.com/ssis865.mp4"],
                title_translations={"en": "No.1 Style Debut"},
            )
        )
        session.commit()

        product = session.get(ProductDB, result.product_id)
        assert json.loads(product.sample_video_urls_json) == ["https://cc3001.example.com/ssis865.mp4"]
        assert json.loads(product.title_translations_json) == {"en": "No.1 Style Debut"}

    def test_resolver_does_not_commit(
        self, resolver: IdentityResolver, session: Session
    ) -> None:
        """Test that a rollback undoes the whole resolution."""
        resolver.resolve(_extraction())
        session.rollback()

        assert ProductRepository(session).count() == 0
        assert PerformerRepository(session).count() == 0


class TestProviderSource:
    """Tests for provider source upserts."""

    def test_latest_price_wins(self, resolver: IdentityResolver, session: Session) -> None:
        """Test that the source row carries the latest price and URL."""
        first = resolver.resolve(_extraction(sale_price=1980, discount_percent=33))
        session.commit()
        second = resolver.resolve(
            _extraction(price=2480, affiliate_url="https://al.dmm.co.jp/?lurl=new")
        )
        session.commit()

        assert second.provider_source_id == first.provider_source_id
        source = session.get(ProviderSourceDB, first.provider_source_id)
        session.refresh(source)
        assert source.price == 2480
        assert source.sale_price is None
        assert source.discount_percent is None
        assert source.affiliate_url == "https://al.dmm.co.jp/?lurl=new"
        assert source.provider_product_code == "ssis00865"

    def test_missing_price_keeps_previous(
        self, resolver: IdentityResolver, session: Session
    ) -> None:
        """Test that an extraction without a price does not erase it."""
        first = resolver.resolve(_extraction(sale_price=1980))
        session.commit()
        resolver.resolve(_extraction(price=None))
        session.commit()

        source = session.get(ProviderSourceDB, first.provider_source_id)
        session.refresh(source)
        assert source.price == 2980
        assert source.sale_price == 1980


class TestPerformers:
    """Tests for performer resolution."""

    def test_valid_performers_linked(self, resolver: IdentityResolver, session: Session) -> None:
        """Test that only valid performers are linked."""
        result = resolver.resolve(_extraction())
        session.commit()

        assert result.performers_linked == ["三上悠亜"]
        assert result.performers_rejected == ["FANZA", "SSIS-865"]
        assert PerformerRepository(session).get_names_for_product(result.product_id) == ["三上悠亜"]

    def test_link_is_idempotent(self, resolver: IdentityResolver, session: Session) -> None:
        """Test that re-resolving does not duplicate links or performers."""
        result = resolver.resolve(_extraction())
        resolver.resolve(_extraction(performer_names=["三上悠亜（みかみゆあ）"]))
        session.commit()

        links = session.execute(
            select(ProductPerformerDB).where(ProductPerformerDB.product_id == result.product_id)
        ).scalars().all()
        assert len(links) == 1
        assert PerformerRepository(session).count() == 1

    def test_same_performer_across_products(
        self, resolver: IdentityResolver, session: Session
    ) -> None:
        """Test that one performer is shared by several products."""
        a = resolver.resolve(_extraction())
        b = resolver.resolve(_extraction(provider_code="ssis00900", performer_names=["三上悠亜"]))
        session.commit()

        repo = PerformerRepository(session)
        assert repo.count() == 1
        assert repo.get_names_for_product(a.product_id) == repo.get_names_for_product(b.product_id)

    def test_alias_resolves_to_existing_performer(
        self, resolver: IdentityResolver, session: Session
    ) -> None:
        """Test that a registered alias maps to the canonical performer."""
        repo = PerformerRepository(session)
        performer_id = repo.get_or_create("三上悠亜")
        repo.add_alias(performer_id, "鬼頭桃菜")
        session.commit()

        result = resolver.resolve(_extraction(performer_names=["鬼頭桃菜"]))
        session.commit()

        assert repo.count() == 1
        assert repo.get_names_for_product(result.product_id) == ["三上悠亜"]

    def test_cache_short_circuits_lookups(
        self, resolver: IdentityResolver, session: Session, cache: RunCache
    ) -> None:
        """Test that a committed performer id is served from the run cache."""
        resolver.resolve(_extraction())
        session.commit()
        cache.commit()

        hits_before = cache.stats.hits
        resolver.resolve(_extraction(provider_code="ssis00900", performer_names=["三上悠亜"]))
        assert cache.stats.hits == hits_before + 1

    def test_cache_rollback_forgets_staged_ids(
        self, resolver: IdentityResolver, session: Session, cache: RunCache
    ) -> None:
        """Test that performer ids from a rolled-back item are not reused."""
        resolver.resolve(_extraction())
        session.rollback()
        cache.rollback()

        assert cache.get_performer_id("三上悠亜") is None
        result = resolver.resolve(_extraction())
        session.commit()
        assert PerformerRepository(session).get_names_for_product(result.product_id) == ["三上悠亜"]


def _resolve_in_own_session(
    session_factory: sessionmaker[Session],
    registry: ProviderRegistry,
    extraction: RawExtraction,
    barrier: threading.Barrier | None = None,
) -> ResolutionResult:
    """Resolve and commit on a fresh session, as a separate crawler process would."""
    with session_factory() as session:
        resolver = IdentityResolver(
            session,
            IdentifierNormalizer.from_registry(registry),
            PerformerValidator(),
            registry,
            cache=RunCache(),
        )
        if barrier is not None:
            barrier.wait(timeout=5)
        result = resolver.resolve(extraction)
        session.commit()
    return result


class TestConcurrentResolution:
    """Tests for two writers resolving the same release at once."""

    def test_second_writer_matches_uncommitted_first(
        self,
        session_factory: sessionmaker[Session],
        registry: ProviderRegistry,
    ) -> None:
        """Test that a writer starting before the first commits still finds one product."""
        first_session = session_factory()
        try:
            first_resolver = IdentityResolver(
                first_session,
                IdentifierNormalizer.from_registry(registry),
                PerformerValidator(),
                registry,
                cache=RunCache(),
            )
            first = first_resolver.resolve(_extraction())

            with ThreadPoolExecutor(max_workers=1) as pool:
                pending = pool.submit(
                    _resolve_in_own_session,
                    session_factory,
                    registry,
                    _extraction(provider_name="mgs", provider_code="SSIS-865"),
                )
                time.sleep(0.2)
                # Waiting on the first writer's uncommitted insert
                assert not pending.done()

                first_session.commit()
                second = pending.result(timeout=10)
        finally:
            first_session.close()

        assert first.is_new_product is True
        assert second.is_new_product is False
        assert second.product_id == first.product_id

        with session_factory() as check:
            assert ProductRepository(check).count() == 1
            assert PerformerRepository(check).count() == 1
            sources = ProviderSourceRepository(check).get_by_product_id(first.product_id)
            assert {s.provider_name for s in sources} == {"fanza", "mgs"}

    def test_simultaneous_writers_create_one_product(
        self,
        session_factory: sessionmaker[Session],
        registry: ProviderRegistry,
    ) -> None:
        """Test that several writers racing on one normalized id create it exactly once."""
        extractions = [
            _extraction(provider_name="fanza", provider_code="ssis00865"),
            _extraction(provider_name="mgs", provider_code="SSIS-865"),
            _extraction(provider_name="sample", provider_code="ssis-865"),
            _extraction(provider_name="mgs", provider_code="ssis865"),
        ]
        barrier = threading.Barrier(len(extractions))

        with ThreadPoolExecutor(max_workers=len(extractions)) as pool:
            futures = [
                pool.submit(_resolve_in_own_session, session_factory, registry, e, barrier)
                for e in extractions
            ]
            results = [f.result(timeout=30) for f in futures]

        assert sum(r.is_new_product for r in results) == 1
        assert len({r.product_id for r in results}) == 1
        assert {r.normalized_product_id for r in results} == {"SSIS-865"}
        with session_factory() as check:
            assert ProductRepository(check).count() == 1
            assert PerformerRepository(check).count() == 1
