"""Keep months of spending in cash; settle spending that cash could not cover."""

from __future__ import annotations

import logging

from ..actions import deposit
from ..explain import ExplainTracker
from ..ledger import LedgerState
from ..records import Action, Cashflow, ModuleOutput
from ..withdrawals import cover_shortfall, harvest_preference, resolve_order
from .base import FinancialModule, MonthContext

logger = logging.getLogger(__name__)


class CashBufferModule(FinancialModule):
    module_id = "cash-buffer"

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        strategies = self.snapshot.scenario.strategies
        buffer = strategies.cash_buffer
        withdrawal = strategies.withdrawal
        early = strategies.early_retirement
        age = context.age

        order = resolve_order(buffer.refill_priority, withdrawal.order)
        pro_rata = buffer.refill_priority == "pro_rata"

        def refill(amount: float, label: str) -> tuple[float, list[Action]]:
            refill_order, preference = harvest_preference(state, order, strategies)
            return cover_shortfall(
                shortfall=amount,
                state=state,
                order=refill_order,
                as_of=context.current,
                age=age,
                early=early,
                avoid_early_penalty=withdrawal.avoid_early_penalty,
                pro_rata=pro_rata,
                label=label,
                taxable_preference=preference,
            )

        cashflows: list[Cashflow] = []
        actions: list[Action] = []

        deferred = state.deferred_shortfall
        explain.add_input("Deferred spending", deferred)
        if deferred > 0:
            missing = max(0.0, deferred - state.total_cash())
            _, taken = refill(missing, "Cover deferred spending")
            actions.extend(taken)
            paid = state.pay(deferred)
            state.deferred_shortfall = 0.0
            if paid > 0:
                cashflows.append(Cashflow(label="Deferred spending", category="other", cash=-paid))
            unmet = deferred - paid
            if unmet > 1e-9:
                state.unmet_spending += unmet
                logger.debug("month %s: %.2f of spending left unmet", context.month_index, unmet)
            explain.add_checkpoint("Unmet spending", max(0.0, unmet))

        monthly = state.monthly_spending
        explain.add_input("Monthly spending", monthly)
        if monthly > 0:
            target_months = max(buffer.target_months, max(0.0, early.bridge_cash_years) * 12.0)
            floor_months = buffer.min_months if withdrawal.use_cash_first else target_months
            ceiling_months = max(buffer.max_months, target_months)
            target = monthly * target_months
            floor = monthly * floor_months
            ceiling = monthly * ceiling_months
            cash = state.total_cash()
            explain.add_checkpoint("Cash", cash)
            explain.add_checkpoint("Target", target)

            if cash < floor:
                remaining, taken = refill(target - cash, "Refill cash buffer")
                actions.extend(taken)
                explain.add_checkpoint("Refill shortfall", remaining)
            elif cash > ceiling:
                investable = [holding for holding in state.holdings if holding.holding_type != "cash"]
                if investable:
                    holding = max(investable, key=lambda item: item.balance)
                    actions.append(
                        deposit(
                            state,
                            holding,
                            cash - target,
                            label="Invest excess cash",
                            as_of=context.current,
                        )
                    )

        return explain.output(cashflows=cashflows, actions=actions)
