"""Bulk find/replace across the text columns of one or all tenants.

Each table is rewritten in its own transaction, so an aborted remap
leaves every table either fully rewritten or untouched.  Tenants are
processed one after another in configuration order; the first failing
tenant stops the run and is reported on the error together with the
tenants already finished, which is where a re-run picks up.

Re-running the same remap after a failure is safe: rows already
converted no longer match ``search`` (provided ``replace`` does not
contain it) and are left alone.

Usage:
    from site_backup.remap import RemapEngine

    engine = RemapEngine(lambda name: get_store(name, config), ["default"], "default")
    result = await engine.remap("http://old.example.com", "https://new.example.com")
"""

import logging
from collections.abc import Callable
from typing import Literal

from pydantic import BaseModel, Field

from site_backup.adapters.base import StoreClient
from site_backup.errors import ColumnLengthViolationError, ConfigurationError, RemapError

logger = logging.getLogger(__name__)

RE_RUN_HINT = "The remap was only partially applied; it is safe to re-run it."


class RemapResult(BaseModel):
    """Result of a completed remap.

    Attributes:
        tenants: Tenants remapped, in order.
        rows_changed: Rows changed per tenant.
    """

    tenants: list[str] = Field(default_factory=list)
    rows_changed: dict[str, int] = Field(default_factory=dict)

    @property
    def total_rows_changed(self) -> int:
        return sum(self.rows_changed.values())


class RemapEngine:
    """Runs literal or regex rewrites through the store contract.

    Args:
        store_factory: Opens a store for a tenant name.  Each store is
            closed once its tenant is done.
        tenants: All configured tenant names, in iteration order.
        current_tenant: Tenant used for ``scope="current"``.
    """

    def __init__(
        self,
        store_factory: Callable[[str], StoreClient],
        tenants: list[str],
        current_tenant: str,
    ) -> None:
        self.store_factory = store_factory
        self.tenants = list(tenants)
        self.current_tenant = current_tenant

    async def remap(
        self,
        search: str,
        replace: str,
        regex: bool = False,
        skip_max_length_violations: bool = False,
        scope: Literal["current", "all"] = "current",
    ) -> RemapResult:
        """Replace ``search`` with ``replace`` in every text column.

        Args:
            search: Literal text, or a store-native regex when ``regex``.
            replace: Replacement; may reference captured groups when ``regex``.
            regex: Treat ``search`` as a regular expression.
            skip_max_length_violations: Leave rows whose replacement would
                not fit their column unchanged instead of aborting.
            scope: ``"current"`` tenant only, or ``"all"`` tenants.

        Raises:
            RemapError: Empty ``search``, or a store error aborted the run.
            ColumnLengthViolationError: A replacement did not fit and
                ``skip_max_length_violations`` is False.
            ConfigurationError: Unknown ``scope``.
        """
        if not search:
            raise RemapError("Search text must not be empty")
        if scope == "all":
            targets = self.tenants
        elif scope == "current":
            targets = [self.current_tenant]
        else:
            raise ConfigurationError(f"Unknown remap scope: {scope!r}. Use 'current' or 'all'.")

        result = RemapResult()
        for tenant in targets:
            logger.info("Remapping tenant %s", tenant)
            try:
                changed = await self._remap_tenant(
                    tenant, search, replace, regex, skip_max_length_violations
                )
            except ColumnLengthViolationError as e:
                raise ColumnLengthViolationError(
                    f"Tenant '{tenant}': {e} {RE_RUN_HINT}",
                    completed_tenants=result.tenants,
                    failed_tenant=tenant,
                    table=e.table,
                ) from e
            except RemapError as e:
                raise RemapError(
                    f"Tenant '{tenant}': {e} {RE_RUN_HINT}",
                    completed_tenants=result.tenants,
                    failed_tenant=tenant,
                    table=e.table,
                ) from e
            except Exception as e:
                raise RemapError(
                    f"Tenant '{tenant}': remap failed: {e} {RE_RUN_HINT}",
                    completed_tenants=result.tenants,
                    failed_tenant=tenant,
                ) from e

            result.tenants.append(tenant)
            result.rows_changed[tenant] = changed
            logger.info("Tenant %s: %d rows changed", tenant, changed)

        return result

    async def _remap_tenant(
        self,
        tenant: str,
        search: str,
        replace: str,
        regex: bool,
        skip_max_length_violations: bool,
    ) -> int:
        store = self.store_factory(tenant)
        changed = 0
        try:
            columns_by_table = await store.text_columns()
            for table, columns in columns_by_table.items():
                if not columns:
                    continue
                try:
                    changed += await store.remap_table(
                        table,
                        columns,
                        search,
                        replace,
                        regex=regex,
                        skip_max_length_violations=skip_max_length_violations,
                    )
                except RemapError as e:
                    if e.table is None:
                        e.table = table
                    raise
                except Exception as e:
                    raise RemapError(f"Table '{table}': {e}", table=table) from e
        finally:
            await store.close()
        return changed
