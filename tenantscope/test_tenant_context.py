"""Tests for the TenantContext facade, its helpers and flow isolation."""

import asyncio
import logging
import threading

import pytest

import tenantscope
from tenantscope.config import Configurator
from tenantscope.exceptions import (
    ConfigurationError,
    TenantContextMissingError,
    TenantNotFoundError,
)
from tenantscope.tenant_context import (
    TenantContext,
    TenantContextFilter,
    current_tenant_or_raise,
    get_current_tenant,
    require_tenant,
    tenant,
    tenant_context,
)


class TestUnconfigured:

    def test_operations_raise_configuration_error(self):
        with pytest.raises(ConfigurationError, match='not configured'):
            tenant.current()
        with pytest.raises(ConfigurationError):
            tenant.switch_permanent('acme')
        with pytest.raises(ConfigurationError):
            tenant.all_tenants()

    def test_get_current_tenant_is_safe(self):
        assert get_current_tenant() is None

    def test_is_configured(self, configure_tenants):
        assert not tenant.is_configured
        configure_tenants()
        assert tenant.is_configured

    def test_configure_rejects_other_types(self):
        with pytest.raises(ConfigurationError):
            TenantContext().configure({'strategy': 'column'})


class TestFacade:

    def test_delegates_to_adapter(self, configure_tenants):
        configure_tenants()

        tenant.switch_permanent('acme')
        assert tenant.current() == 'acme'
        assert tenant.adapter.strategy == 'column'

        tenant.reset()
        assert tenant.current() is None

    def test_exists_and_all_tenants(self, configure_tenants):
        configure_tenants()

        assert tenant.all_tenants() == ['acme', 'globex', 'initech']
        assert tenant.exists('globex')
        assert not tenant.exists('umbrella')
        assert not tenant.exists(None)

    def test_iterate_all(self, configure_tenants):
        configure_tenants()

        assert tenant.iterate_all(lambda name: name.upper()) == ['ACME', 'GLOBEX', 'INITECH']
        assert tenant.current() is None

    def test_reconfigure_replaces_state(self, configure_tenants):
        configure_tenants()
        tenant.switch_permanent('acme')

        configure_tenants(tenant_names=['umbrella'])

        assert tenant.current() is None
        assert tenant.all_tenants() == ['umbrella']

    def test_is_excluded(self, configure_tenants):
        configure_tenants(excluded_models=['User'])

        assert tenant.is_excluded('User')
        assert not tenant.is_excluded('Article')

    def test_package_level_configure(self):
        config = tenantscope.configure(Configurator(tenant_names=['acme']))

        assert tenantscope.configuration() is config
        tenantscope.reset()
        assert not tenant.is_configured


class TestHelpers:

    def test_tenant_context_manager(self, configure_tenants):
        configure_tenants()

        with tenant_context('globex') as name:
            assert name == 'globex'
            assert get_current_tenant() == 'globex'

        assert get_current_tenant() is None

    def test_tenant_context_unknown(self, configure_tenants):
        configure_tenants()

        with pytest.raises(TenantNotFoundError):
            with tenant_context('umbrella'):
                pass

    def test_current_tenant_or_raise(self, configure_tenants):
        configure_tenants()

        with pytest.raises(TenantContextMissingError) as exc_info:
            current_tenant_or_raise('export')
        assert exc_info.value.operation == 'export'

        with tenant.scoped('acme'):
            assert current_tenant_or_raise() == 'acme'

    def test_require_tenant_decorator(self, configure_tenants):
        configure_tenants()

        @require_tenant()
        def export_invoices():
            return tenant.current()

        with pytest.raises(TenantContextMissingError) as exc_info:
            export_invoices()
        assert exc_info.value.operation == 'export_invoices'

        with tenant.scoped('initech'):
            assert export_invoices() == 'initech'

    def test_log_filter_adds_tenant(self, configure_tenants):
        configure_tenants()
        record = logging.LogRecord('app', logging.INFO, __file__, 1, 'hello', None, None)

        with tenant.scoped('acme'):
            assert TenantContextFilter().filter(record)

        assert record.tenant == 'acme'


class TestFlowIsolation:

    def test_threads_do_not_share_tenant(self, configure_tenants):
        configure_tenants()
        barrier = threading.Barrier(2)
        seen = {}

        def worker(name):
            with tenant.scoped(name):
                barrier.wait(timeout=5)
                seen[name] = tenant.current()
                barrier.wait(timeout=5)

        threads = [threading.Thread(target=worker, args=(name,)) for name in ('acme', 'globex')]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert seen == {'acme': 'acme', 'globex': 'globex'}
        assert tenant.current() is None

    def test_new_thread_starts_inactive(self, configure_tenants):
        configure_tenants()
        seen = []

        with tenant.scoped('acme'):
            thread = threading.Thread(target=lambda: seen.append(tenant.current()))
            thread.start()
            thread.join()

        assert seen == [None]

    def test_asyncio_tasks_do_not_share_tenant(self, configure_tenants):
        configure_tenants()

        async def handle(name):
            with tenant.scoped(name):
                await asyncio.sleep(0)
                first = tenant.current()
                await asyncio.sleep(0)
                return first, tenant.current()

        async def main():
            return await asyncio.gather(handle('acme'), handle('globex'), handle('initech'))

        results = asyncio.run(main())

        assert results == [('acme', 'acme'), ('globex', 'globex'), ('initech', 'initech')]

    def test_cancelled_task_restores_tenant(self, configure_tenants):
        configure_tenants()

        async def main():
            states = []
            started = asyncio.Event()

            async def body():
                try:
                    with tenant.scoped('acme'):
                        started.set()
                        await asyncio.sleep(10)
                finally:
                    states.append(tenant.current())

            task = asyncio.create_task(body())
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return states

        assert asyncio.run(main()) == [None]
