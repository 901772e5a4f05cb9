"""Traditional-to-Roth conversions and Roth ladder rungs."""

from __future__ import annotations

from typing import Callable

from ..actions import convert
from ..explain import ExplainTracker
from ..ledger import HoldingState, LedgerState
from ..records import Action, ModuleOutput
from ..rmd import divisor_table, outstanding_rmd, required_distribution
from ..roth import irmaa_headroom, planned_conversion, planned_ladder_conversion, tax_adjusted_conversion
from ..schema import Snapshot
from ..tax import compute_tax
from ..tax_policy import ResolvedTaxPolicy, resolve_irmaa_table, resolve_state_tax_policy, resolve_tax_policy
from ..withdrawals import estimate_traditional_share, resolve_order
from .base import FinancialModule, MonthContext


class ConversionModule(FinancialModule):
    module_id = "conversions"

    def __init__(self, snapshot: Snapshot) -> None:
        super().__init__(snapshot)
        self.rmd_table = divisor_table(snapshot.rmd_table)

    def _policy(self, context: MonthContext) -> ResolvedTaxPolicy | None:
        strategy = self.snapshot.scenario.strategies.roth_conversion
        if strategy.annual_amount > 0 or strategy.target_bracket_rate <= 0:
            return None
        return resolve_tax_policy(
            self.snapshot.tax_policies,
            year=context.policy_year,
            filing_status=self.snapshot.scenario.strategies.tax.filing_status,
            inflation_rate=context.rate("cpi"),
        )

    def _tax_cost(self, context: MonthContext, state: LedgerState, policy: ResolvedTaxPolicy) -> Callable[[float], float]:
        """Extra federal and state tax from adding ordinary income to this year."""
        tax = self.snapshot.scenario.strategies.tax
        ledger = state.year_ledger
        state_policy = resolve_state_tax_policy(
            self.snapshot.state_tax_policies,
            state_code=tax.state_code,
            year=context.policy_year,
            filing_status=tax.filing_status,
        )

        def owed(extra: float) -> float:
            return compute_tax(
                ordinary_income=ledger.ordinary_income + extra,
                capital_gains=ledger.capital_gains,
                deductions=ledger.deductions,
                tax_exempt_income=ledger.tax_exempt_income,
                social_security_benefits=0.0,
                provisional_bracket=None,
                policy=policy,
                state_tax_rate=tax.state_tax_rate,
                use_standard_deduction=tax.use_standard_deduction,
                apply_capital_gains_rates=tax.apply_capital_gains_rates,
                state_policy=state_policy,
            ).tax_owed

        base = owed(0.0)
        return lambda extra: max(0.0, owed(extra) - base)

    def _rmd_reserve(self, context: MonthContext, state: LedgerState) -> float:
        rmd = self.snapshot.scenario.strategies.rmd
        if not rmd.enabled or "traditional" not in rmd.account_types:
            return 0.0
        eligible = [holding.id for holding in state.holdings if holding.tax_type in rmd.account_types]
        required = required_distribution(
            prior_year_end_balances=state.prior_year_end_balances,
            eligible_ids=eligible,
            age_years=context.age,
            start_age=rmd.start_age,
            table=self.rmd_table,
        )
        return outstanding_rmd(required=required, ytd_withdrawals=state.ytd_withdrawals, eligible_ids=eligible)

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        strategies = self.snapshot.scenario.strategies
        conversion = strategies.roth_conversion
        ladder = strategies.roth_ladder
        explain.add_input("Conversion enabled", conversion.enabled)
        explain.add_input("Ladder enabled", ladder.enabled)
        if not context.is_start_of_year or not (conversion.enabled or ladder.enabled):
            return explain.output()

        age = context.age
        factor = context.inflate_from_start(1.0, "cpi")
        ledger = state.year_ledger
        ytd_magi = ledger.ordinary_income + ledger.capital_gains + ledger.tax_exempt_income

        planned = 0.0
        if conversion.enabled:
            policy = self._policy(context)
            irmaa = None
            if conversion.respect_irmaa:
                irmaa = resolve_irmaa_table(
                    self.snapshot.irmaa_tables,
                    year=context.policy_year,
                    filing_status=strategies.tax.filing_status,
                    inflation_rate=context.rate("cpi"),
                )
            planned = planned_conversion(
                conversion,
                age=age,
                policy=policy,
                ytd_ordinary_income=ledger.ordinary_income,
                ytd_magi=ytd_magi,
                irmaa_table=irmaa,
                inflation_factor=factor,
            )
            if policy is not None and planned > 0:
                candidate = planned
                planned = tax_adjusted_conversion(
                    candidate,
                    tax_cost=self._tax_cost(context, state, policy),
                    cash=state.total_cash(),
                    traditional_needed=lambda amount: estimate_traditional_share(
                        amount,
                        state=state,
                        order=resolve_order(None, strategies.withdrawal.order),
                        as_of=context.current,
                        age=age,
                        early=strategies.early_retirement,
                    ),
                    irmaa_room=irmaa_headroom(irmaa, ytd_magi) if conversion.respect_irmaa else None,
                    minimum=conversion.min_conversion * factor,
                    maximum=conversion.max_conversion * factor,
                )
                explain.add_checkpoint("Bracket candidate", candidate)
        rung = planned_ladder_conversion(ladder, age=age, inflation_factor=factor)
        amount = max(planned, rung)

        sources = state.holdings_of_type("traditional")
        targets = state.holdings_of_type("roth")
        reserve = self._rmd_reserve(context, state)
        available = max(0.0, sum(holding.balance for holding in sources) - reserve)
        amount = min(amount, available)

        explain.add_input("Age", age)
        explain.add_checkpoint("Planned conversion", planned)
        explain.add_checkpoint("Ladder rung", rung)
        explain.add_checkpoint("RMD reserve", reserve)
        explain.add_checkpoint("Available traditional", available)
        if amount <= 0 or not targets:
            explain.add_checkpoint("Converted", 0.0)
            return explain.output()

        actions = self._convert(context, state, sources, targets[0], amount)
        explain.add_checkpoint("Converted", sum(action.resolved_amount for action in actions))
        return explain.output(actions=actions)

    def _convert(
        self,
        context: MonthContext,
        state: LedgerState,
        sources: list[HoldingState],
        target: HoldingState,
        amount: float,
    ) -> list[Action]:
        actions: list[Action] = []
        remaining = amount
        for source in sources:
            if remaining <= 1e-9:
                break
            if source.balance <= 0:
                continue
            action = convert(
                state,
                source,
                target,
                min(remaining, source.balance),
                label="Roth conversion",
                as_of=context.current,
            )
            actions.append(action)
            remaining -= action.resolved_amount
        return actions
