"""Quota ledger: per-system rate windows, borrowing and the monthly budget.

The ledger is a single versioned row. Every admission reads the row,
computes the next state with the pure functions below, and publishes it
with a compare-and-swap against the version it read. A lost race simply
recomputes from the fresh row, so no two admissions can ever be charged
against the same observed capacity.
"""

import asyncio
import logging
import math
from dataclasses import replace

from logbridge.core.clock import Clock, month_start_ms, next_month_start_ms, now_ms
from logbridge.core.config import IngestionConfig
from logbridge.core.exceptions import ConfigurationError, StorageTransactionError
from logbridge.core.models import (
    AdmissionDecision,
    QuotaState,
    QuotaStatus,
    SystemArea,
    SystemUsage,
    WindowState,
)
from logbridge.core.ports import QuotaStorePort

logger = logging.getLogger(__name__)

BUDGET_EXHAUSTED = "budget_exhausted"
SYSTEM_WINDOW_EXHAUSTED = "system_window_exhausted"
GLOBAL_WINDOW_EXHAUSTED = "global_window_exhausted"


def _fresh_window(config: IngestionConfig, system: SystemArea, now: int) -> WindowState:
    return WindowState(
        count=0, limit=config.window_limit(system), reset_at=now + config.window_ms
    )


def default_state(config: IngestionConfig, now: int) -> QuotaState:
    """Ledger state for a system that has never admitted anything."""
    return QuotaState(
        windows={s: _fresh_window(config, s, now) for s in SystemArea},
        window_capacity=config.window_capacity,
        budget_used=0,
        budget_cap=config.budget_cap,
        cycle_start_at=month_start_ms(now),
        cycle_usage={},
        version=0,
    )


def roll_state(state: QuotaState, config: IngestionConfig, now: int) -> QuotaState:
    """Apply elapsed window and cycle resets as of ``now``.

    Windows reset independently once their ``reset_at`` has passed. The
    budget cycle resets at the next UTC calendar month. Missing windows
    are recreated. The version is left untouched.
    """
    windows = {}
    for system in SystemArea:
        window = state.windows.get(system)
        if window is None or now >= window.reset_at:
            window = _fresh_window(config, system, now)
        windows[system] = window

    budget_used = state.budget_used
    cycle_usage = dict(state.cycle_usage)
    cycle_start_at = state.cycle_start_at
    if now >= next_month_start_ms(cycle_start_at):
        budget_used = 0
        cycle_usage = {}
        cycle_start_at = month_start_ms(now)

    return replace(
        state,
        windows=windows,
        window_capacity=config.window_capacity,
        budget_cap=config.budget_cap,
        budget_used=budget_used,
        cycle_usage=cycle_usage,
        cycle_start_at=cycle_start_at,
    )


def lendable_capacity(
    state: QuotaState, system: SystemArea, reserve: float = 0.0
) -> int:
    """Unused capacity ``system`` may borrow in the current window.

    The pool is the unallocated remainder of the global capacity plus the
    unused allocation of every other system (less its protected reserve),
    minus everything already borrowed by any system. With no reserve this
    equals the free global capacity.
    """
    allocated = sum(w.limit for w in state.windows.values())
    pool = state.window_capacity - allocated
    for other, window in state.windows.items():
        if other == system or window.count >= window.limit:
            continue
        lendable = math.floor(window.limit * (1.0 - reserve) + 1e-9)
        pool += max(0, lendable - window.count)
    pool -= sum(w.overage for w in state.windows.values())
    return max(0, pool)


def evaluate(
    state: QuotaState,
    system: SystemArea,
    critical: bool,
    config: IngestionConfig,
) -> AdmissionDecision:
    """Decide whether one record from ``system`` may be admitted.

    ``state`` must already be rolled to the current time. Critical records
    are admitted regardless of caps and flagged ``forced`` when a cap
    would otherwise have rejected them.
    """
    window = state.windows[system]
    ratio = state.budget_ratio
    warning = ratio >= config.budget_warning_ratio
    borrowed = False
    reason = None

    if ratio >= config.budget_critical_ratio:
        reason = BUDGET_EXHAUSTED
    elif state.window_total >= state.window_capacity:
        reason = GLOBAL_WINDOW_EXHAUSTED
    elif window.count >= window.limit:
        if lendable_capacity(state, system, config.lender_reserve) > 0:
            borrowed = True
        else:
            reason = SYSTEM_WINDOW_EXHAUSTED

    common = {
        "system_area": system,
        "budget_warning": warning,
        "window_reset_at": window.reset_at,
        "cycle_start_at": state.cycle_start_at,
    }
    if reason is None:
        return AdmissionDecision(admitted=True, borrowed=borrowed, **common)
    if critical:
        return AdmissionDecision(admitted=True, forced=True, reason=reason, **common)
    return AdmissionDecision(admitted=False, reason=reason, **common)


def charge(state: QuotaState, decision: AdmissionDecision) -> QuotaState:
    """Next state after counting an admitted record."""
    system = decision.system_area
    window = state.windows[system]
    counted = replace(
        window,
        count=window.count + 1,
        forced=window.forced + (1 if decision.forced else 0),
    )
    usage = dict(state.cycle_usage)
    usage[system] = usage.get(system, 0) + 1
    return replace(
        state.with_window(system, counted),
        budget_used=state.budget_used + 1,
        cycle_usage=usage,
        version=state.version + 1,
    )


def uncharge(state: QuotaState, decision: AdmissionDecision) -> QuotaState | None:
    """Next state after undoing ``decision``'s charge, or None if nothing applies.

    The window is only decremented if it is still the window the charge
    was made in; likewise for the budget cycle.
    """
    system = decision.system_area
    result = state
    changed = False

    window = state.windows.get(system)
    if window is not None and window.reset_at == decision.window_reset_at:
        if window.count > 0:
            forced = window.forced
            if decision.forced and forced > 0:
                forced -= 1
            result = result.with_window(
                system, replace(window, count=window.count - 1, forced=forced)
            )
            changed = True

    if state.cycle_start_at == decision.cycle_start_at and state.budget_used > 0:
        usage = dict(result.cycle_usage)
        if usage.get(system, 0) > 0:
            usage[system] -= 1
        result = replace(result, budget_used=state.budget_used - 1, cycle_usage=usage)
        changed = True

    if not changed:
        return None
    return replace(result, version=state.version + 1)


def budget_state(ratio: float, config: IngestionConfig) -> str:
    if ratio >= config.budget_critical_ratio:
        return "critical_only"
    if ratio >= config.budget_warning_ratio:
        return "warning"
    return "ok"


class QuotaLedger:
    """Admission control against per-system windows and the global budget.

    Example:
        ```python
        ledger = QuotaLedger(InMemoryQuotaStore(), IngestionConfig())
        decision = await ledger.try_admit(SystemArea.CLIENT)
        if not decision:
            ...
        ```
    """

    def __init__(
        self,
        store: QuotaStorePort,
        config: IngestionConfig | None = None,
        clock: Clock = now_ms,
    ) -> None:
        self._store = store
        self._config = config or IngestionConfig()
        self._clock = clock

    @property
    def config(self) -> IngestionConfig:
        return self._config

    async def _load_or_init(self) -> QuotaState:
        """Return the stored state, creating or healing it on demand."""
        for _ in range(self._config.cas_attempts):
            try:
                state = await self._store.load()
            except ConfigurationError as exc:
                healed = await self._heal(exc)
                if healed is not None:
                    return healed
                await asyncio.sleep(0)
                continue
            if state is not None:
                return state
            state = default_state(self._config, self._clock())
            if await self._store.compare_and_swap(None, state):
                logger.info("Quota ledger initialized")
                return state
        raise StorageTransactionError("quota ledger could not be initialized")

    async def _heal(self, exc: ConfigurationError) -> QuotaState | None:
        """Replace an unreadable row with defaults.

        When the broken row's version is known the replacement is a
        compare-and-swap against it, so a concurrent heal or charge is
        never overwritten; None means another writer got there first.
        """
        state = default_state(self._config, self._clock())
        if exc.version is None:
            logger.warning("Quota ledger unreadable, resetting to defaults: %s", exc)
            await self._store.reset(state)
            return state
        state = replace(state, version=exc.version + 1)
        if await self._store.compare_and_swap(exc.version, state):
            logger.warning("Quota ledger unreadable, healed to defaults: %s", exc)
            return state
        return None

    async def try_admit(
        self, system_area: SystemArea, critical: bool = False
    ) -> AdmissionDecision:
        """Charge one record to ``system_area`` if capacity allows.

        Returns:
            An AdmissionDecision; truthy if admitted.

        Raises:
            StorageTransactionError: If contention prevented a decision
                within the configured number of attempts.
        """
        for _ in range(self._config.cas_attempts):
            current = await self._load_or_init()
            state = roll_state(current, self._config, self._clock())
            decision = evaluate(state, system_area, critical, self._config)
            if not decision:
                return decision
            if await self._store.compare_and_swap(
                current.version, charge(state, decision)
            ):
                if decision.forced:
                    logger.info(
                        "Critical record forced past %s for %s",
                        decision.reason,
                        system_area.value,
                    )
                return decision
            await asyncio.sleep(0)
        raise StorageTransactionError("quota ledger contention")

    async def release(self, decision: AdmissionDecision) -> bool:
        """Undo the charge made for an admitted decision.

        Used when the write that followed admission failed, so a retry is
        charged exactly once. Returns True if a charge was undone.
        """
        if not decision:
            return False
        for _ in range(self._config.cas_attempts):
            current = await self._store.load()
            if current is None:
                return False
            updated = uncharge(current, decision)
            if updated is None:
                return False
            if await self._store.compare_and_swap(current.version, updated):
                return True
            await asyncio.sleep(0)
        raise StorageTransactionError("quota ledger contention during release")

    async def current_status(self) -> QuotaStatus:
        """Snapshot of usage as of now. Never creates or mutates state."""
        now = self._clock()
        try:
            stored = await self._store.load()
        except ConfigurationError:
            stored = None
        state = stored or default_state(self._config, now)
        state = roll_state(state, self._config, now)
        ratio = state.budget_ratio
        per_system = tuple(
            SystemUsage(
                system_area=system,
                window_count=window.count,
                window_limit=window.limit,
                window_reset_at=window.reset_at,
                borrowed=window.overage,
                cycle_usage=state.cycle_usage.get(system, 0),
            )
            for system, window in state.windows.items()
        )
        return QuotaStatus(
            per_system=per_system,
            window_total=state.window_total,
            window_capacity=state.window_capacity,
            budget_used=state.budget_used,
            budget_cap=state.budget_cap,
            budget_percent=round(ratio * 100, 2),
            budget_state=budget_state(ratio, self._config),
            cycle_start_at=state.cycle_start_at,
            estimated_cost=round(
                state.budget_used / 1_000_000 * self._config.cost_per_million, 6
            ),
        )


__all__ = [
    "BUDGET_EXHAUSTED",
    "GLOBAL_WINDOW_EXHAUSTED",
    "SYSTEM_WINDOW_EXHAUSTED",
    "QuotaLedger",
    "charge",
    "default_state",
    "evaluate",
    "lendable_capacity",
    "roll_state",
    "uncharge",
]
