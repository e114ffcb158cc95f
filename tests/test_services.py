import smtplib

import pytest
import redis

from core import config as core_config
from services import email as email_service
from services import local_store
from services.email import render_template, send_email
from services.errors import StateStoreError
from services.sample_orders import SAMPLE_ORDERS
from tasks.email_tasks import send_email_task


class _BrokenRedis:
    """Every call fails the way an unreachable server does."""

    def __getattr__(self, name):
        def _fail(*args, **kwargs):
            raise redis.ConnectionError("Connection refused")

        return _fail


@pytest.fixture
def broken_redis(monkeypatch):
    monkeypatch.setattr(local_store, "redis_client", _BrokenRedis())


class TestLocalStore:

    def test_keys_are_namespaced(self, fake_redis):
        local_store.cache_profile(7, {"city": "Dhaka"}, "2024-09-01T00:00:00+00:00")
        local_store.cache_order("guest", {"order_number": "TSR-1"})

        assert fake_redis.exists("tsr-fashion-profile:7")
        assert fake_redis.exists("tsr-fashion-orders:guest")

    def test_cache_order_replaces_same_number(self):
        local_store.cache_order(3, {"order_number": "TSR-100000", "status": "processing"})
        local_store.cache_order(3, {"order_number": "tsr-100000", "status": "shipped"})

        orders = local_store.get_cached_orders(3)
        assert len(orders) == 1
        assert orders[0]["status"] == "shipped"

    def test_cache_order_keeps_latest_entries(self):
        for i in range(local_store.MAX_CACHED_ORDERS + 5):
            local_store.cache_order(3, {"order_number": f"TSR-{i:06d}"})

        orders = local_store.get_cached_orders(3)
        assert len(orders) == local_store.MAX_CACHED_ORDERS
        assert orders[-1]["order_number"] == f"TSR-{local_store.MAX_CACHED_ORDERS + 4:06d}"

    def test_corrupted_entry_is_discarded(self, fake_redis):
        fake_redis.set("tsr-fashion-profile:9", "{not json")

        assert local_store.get_cached_profile(9) is None
        assert not fake_redis.exists("tsr-fashion-profile:9")

    def test_checkout_state_expires(self, fake_redis):
        local_store.save_checkout_state("cart-1", {"step": "payment"})

        assert local_store.load_checkout_state("cart-1") == {"step": "payment"}
        assert 0 < fake_redis.ttl("tsr-checkout:cart-1") <= local_store.CHECKOUT_TTL_SECONDS

    def test_checkout_lock_is_exclusive(self):
        holder = local_store.acquire_checkout_lock("cart-1")
        assert holder
        assert local_store.acquire_checkout_lock("cart-1") is None
        local_store.release_checkout_lock("cart-1", holder)
        assert local_store.acquire_checkout_lock("cart-1")

    def test_stale_holder_cannot_release_newer_lock(self, fake_redis):
        stale = local_store.acquire_checkout_lock("cart-1")
        # The first confirmation outlives its TTL and another one takes over
        fake_redis.delete("tsr-checkout-lock:cart-1")
        current = local_store.acquire_checkout_lock("cart-1")

        local_store.release_checkout_lock("cart-1", stale)

        assert current != stale
        assert fake_redis.get("tsr-checkout-lock:cart-1") == current
        assert local_store.acquire_checkout_lock("cart-1") is None

    def test_reads_degrade_when_redis_is_down(self, broken_redis):
        assert local_store.get_cached_profile(1) is None
        assert local_store.get_cached_orders(1) == []
        assert local_store.load_checkout_state("cart-1") is None
        local_store.cache_order(1, {"order_number": "TSR-1"})
        local_store.release_checkout_lock("cart-1", "holder")

    def test_checkout_writes_fail_loudly_when_redis_is_down(self, broken_redis):
        with pytest.raises(StateStoreError):
            local_store.save_checkout_state("cart-1", {"step": "address"})
        with pytest.raises(StateStoreError):
            local_store.acquire_checkout_lock("cart-1")


class TestEmail:

    def test_render_order_confirmation(self):
        body = render_template(
            "emails/order_confirmation.txt", {"full_name": "Nadia", "order": SAMPLE_ORDERS[0]}
        )
        assert "Hi Nadia" in body
        assert "TSR-105284" in body
        assert "Dhaka 1205" in body

    def test_deliver_without_smtp_is_skipped(self, monkeypatch):
        monkeypatch.setattr(core_config.settings, "SMTP_PASSWORD", "")

        def _no_network(*args, **kwargs):
            raise AssertionError("SMTP should not be contacted")

        monkeypatch.setattr(smtplib, "SMTP", _no_network)
        email_service.deliver_email("a@example.com", "Hello", "Body")

    def test_send_email_through_celery(self, monkeypatch):
        delivered = []
        monkeypatch.setattr(core_config.settings, "EMAIL_USE_CELERY", True)
        monkeypatch.setattr(email_service, "deliver_email", lambda *args: delivered.append(args))

        # Tasks run eagerly under TESTING
        send_email("a@example.com", "Hello", "Body")

        assert delivered == [("a@example.com", "Hello", "Body")]

    def test_send_email_inline(self, monkeypatch):
        delivered = []
        monkeypatch.setattr(core_config.settings, "EMAIL_USE_CELERY", False)
        monkeypatch.setattr(email_service, "deliver_email", lambda *args: delivered.append(args))

        send_email("a@example.com", "Hello", "Body")

        assert delivered == [("a@example.com", "Hello", "Body")]

    def test_task_reports_sent(self, monkeypatch):
        monkeypatch.setattr(email_service, "deliver_email", lambda *args: None)

        result = send_email_task.apply(args=("a@example.com", "Hello", "Body")).get()

        assert result == {"status": "sent", "to": "a@example.com", "subject": "Hello"}

    def test_notification_failure_does_not_raise(self, monkeypatch):
        def _boom(*args, **kwargs):
            raise smtplib.SMTPException("relay down")

        monkeypatch.setattr(email_service, "send_email", _boom)
        email_service.notify_order_confirmed("a@example.com", "Nadia", SAMPLE_ORDERS[0])
        email_service.notify_support_received("a@example.com", "Nadia", "Hello")
