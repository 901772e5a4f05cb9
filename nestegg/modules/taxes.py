"""Year-end income tax settlement."""

from __future__ import annotations

import logging

from ..explain import ExplainTracker
from ..ledger import LedgerState
from ..records import Action, Cashflow, ModuleOutput
from ..tax import compute_payroll_tax, compute_tax
from ..tax_policy import resolve_provisional_bracket, resolve_state_tax_policy, resolve_tax_policy
from ..withdrawals import cover_shortfall, resolve_order
from .base import FinancialModule, MonthContext

logger = logging.getLogger(__name__)


class TaxModule(FinancialModule):
    """Settle the year's liability in its last month.

    The closing ledger is swapped out before any settlement withdrawal, so
    tax and gains triggered by paying the bill count toward the next year.
    """

    module_id = "taxes"

    def apply(self, context: MonthContext, state: LedgerState) -> ModuleOutput:
        explain = ExplainTracker()
        strategies = self.snapshot.scenario.strategies
        tax = strategies.tax
        explain.add_input("Policy year", context.policy_year)
        explain.add_input("Filing status", tax.filing_status)
        explain.add_input("State", tax.state_code)
        explain.add_input("State tax rate", tax.state_tax_rate)
        explain.add_input("Use standard deduction", tax.use_standard_deduction)
        explain.add_input("Apply cap gains rates", tax.apply_capital_gains_rates)
        if not context.is_end_of_year:
            explain.add_checkpoint("Taxes applied", False)
            return explain.output()

        policy = resolve_tax_policy(
            self.snapshot.tax_policies,
            year=context.policy_year,
            filing_status=tax.filing_status,
            inflation_rate=context.rate("cpi"),
        )
        ledger = state.year_ledger
        provisional = None
        if ledger.social_security_benefits > 0:
            provisional = resolve_provisional_bracket(
                self.snapshot.social_security_provisional_brackets,
                year=context.policy_year,
                filing_status=tax.filing_status,
            )

        result = compute_tax(
            ordinary_income=ledger.ordinary_income,
            capital_gains=ledger.capital_gains,
            deductions=ledger.deductions,
            tax_exempt_income=ledger.tax_exempt_income,
            social_security_benefits=ledger.social_security_benefits,
            provisional_bracket=provisional,
            policy=policy,
            state_tax_rate=tax.state_tax_rate,
            use_standard_deduction=tax.use_standard_deduction,
            apply_capital_gains_rates=tax.apply_capital_gains_rates,
            state_policy=resolve_state_tax_policy(
                self.snapshot.state_tax_policies,
                state_code=tax.state_code,
                year=context.policy_year,
                filing_status=tax.filing_status,
            ),
        )
        payroll = compute_payroll_tax(
            ledger.earned_income,
            filing_status=tax.filing_status,
            year=context.current.year,
            inflation_rate=context.rate("cpi"),
        )
        total = result.tax_owed + payroll.total + ledger.penalties
        due = total - ledger.tax_paid
        state.magi_history[context.year_index] = result.magi

        explain.add_checkpoint("Taxes applied", True)
        explain.add_checkpoint("Policy source year", policy.source_year)
        explain.add_checkpoint("Ordinary income", ledger.ordinary_income)
        explain.add_checkpoint("Capital gains", ledger.capital_gains)
        explain.add_checkpoint("Deductions", ledger.deductions)
        explain.add_checkpoint("Tax exempt", ledger.tax_exempt_income)
        explain.add_checkpoint("Social Security benefits", ledger.social_security_benefits)
        explain.add_checkpoint("Taxable Social Security", result.taxable_social_security)
        explain.add_checkpoint("Std deduction", result.standard_deduction_applied)
        explain.add_checkpoint("Taxable ordinary", result.taxable_ordinary_income)
        explain.add_checkpoint("Taxable cap gains", result.taxable_capital_gains)
        explain.add_checkpoint("Ordinary tax", result.ordinary_tax)
        explain.add_checkpoint("Cap gains tax", result.capital_gains_tax)
        explain.add_checkpoint("State tax", result.state_tax)
        explain.add_checkpoint("Payroll tax", payroll.total)
        explain.add_checkpoint("Penalties", ledger.penalties)
        explain.add_checkpoint("Total tax", total)
        explain.add_checkpoint("Already paid", ledger.tax_paid)
        explain.add_checkpoint("MAGI", result.magi)

        closing = state.open_next_year()
        cashflows: list[Cashflow] = []
        actions: list[Action] = []
        if due > 0:
            missing = max(0.0, due - state.total_cash())
            if missing > 0:
                withdrawal = strategies.withdrawal
                _, actions = cover_shortfall(
                    shortfall=missing,
                    state=state,
                    order=resolve_order(None, withdrawal.order),
                    as_of=context.current,
                    age=context.age,
                    early=strategies.early_retirement,
                    avoid_early_penalty=withdrawal.avoid_early_penalty,
                    label="Tax payment withdrawal",
                )
            paid = state.pay(due)
            closing.tax_paid += paid
            if paid > 0:
                cashflows.append(Cashflow(label="Taxes", category="other", cash=-paid))
            unpaid = due - paid
            if unpaid > 1e-9:
                state.unmet_spending += unpaid
                logger.debug("year %s: %.2f of tax left unpaid", context.year_index, unpaid)
            explain.add_checkpoint("Paid", paid)
            explain.add_checkpoint("Unpaid", max(0.0, unpaid))
        elif due < 0:
            refund = -due
            state.receive(refund)
            closing.tax_paid -= refund
            cashflows.append(Cashflow(label="Tax refund", category="other", cash=refund))
            explain.add_checkpoint("Refund", refund)

        state.close_year(closing)
        return explain.output(cashflows=cashflows, actions=actions)
