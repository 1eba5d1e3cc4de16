"""
Tests for ProvisioningService.

Covers:
- Recalculation persists an analysis, milestone state and settlement
- Milestone alerts: none on first run, ties or regressions; per-threshold
  and direct policies on skipped thresholds
- Alert read lifecycle
- Selectors over persisted analyses and alerts
- Append-only enforcement of analyses and alerts
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from provisioning_kernel.domain.analysis import AlertType
from provisioning_kernel.domain.results import IssueCode
from provisioning_kernel.domain.values import (
    AlertPolicy,
    CreditStage,
    DefaultTrigger,
    Milestone,
    RiskIndicator,
    Stage,
)
from provisioning_kernel.exceptions import (
    AlertNotFoundError,
    AnalysisNotFoundError,
    ImmutabilityViolationError,
    MilestoneRegressionError,
)
from provisioning_kernel.models.alert import ProvisionAlertModel
from provisioning_kernel.models.analysis import ProvisioningAnalysisModel
from provisioning_kernel.models.milestone_state import ContractMilestoneStateModel
from provisioning_kernel.selectors.provisioning_selector import ProvisioningSelector
from provisioning_services import ProvisioningService


@pytest.fixture
def service(session, reference_data, deterministic_clock) -> ProvisioningService:
    return ProvisioningService(session, reference_data, clock=deterministic_clock)


@pytest.fixture
def selector(session) -> ProvisioningSelector:
    return ProvisioningSelector(session)


@pytest.fixture
def skip_to_premium(service, make_snapshot, deterministic_clock):
    """
    Run a C2 contract at 105 days (40.2%, favoravel), then at 490 days
    (91.0%, premium) and return the second result.
    """

    def _run(svc=service):
        svc.recalculate(make_snapshot(days_overdue=105, classification="C2"))
        deterministic_clock.advance(60)
        return svc.recalculate(make_snapshot(days_overdue=490, classification="C2"))

    return _run


class TestRecalculate:
    def test_persists_analysis(self, service, selector, make_snapshot):
        result = service.recalculate(make_snapshot(days_overdue=45))

        assert result.is_success
        assert result.analysis.analysis_id is not None
        latest = selector.require_latest_analysis("CTR-001")
        assert latest.analysis_id == result.analysis.analysis_id
        assert latest.adjusted_percentage == Decimal("3.0")
        assert latest.provision_value == Decimal("300.00")
        assert latest.stage is Stage.C

    def test_persists_credit_risk_readings(self, service, selector, session, make_snapshot):
        service.recalculate(
            make_snapshot(days_overdue=105, classification="C3", under_judicial_measure=True)
        )
        session.expire_all()

        latest = selector.require_latest_analysis("CTR-001")
        assert latest.credit_stage is CreditStage.PROBLEM_ASSET
        assert latest.default_triggers == (
            DefaultTrigger.OVERDUE_90_DAYS,
            DefaultTrigger.JUDICIAL_MEASURE,
        )
        assert latest.risk_indicators == (RiskIndicator.HIGH_PROVISION,)
        assert latest.probability_of_default == Decimal("80")
        assert latest.loss_given_default == Decimal("45")
        assert latest.expected_loss == Decimal("3600.00")
        assert latest.provisioning_mark == Decimal("50")

    def test_reference_date_defaults_to_clock(self, service, make_snapshot, deterministic_clock):
        result = service.recalculate(make_snapshot(days_overdue=45))

        assert result.analysis.reference_date == deterministic_clock.today()
        assert result.analysis.days_overdue == 45
        assert result.analysis.calculated_at == deterministic_clock.now()

    def test_explicit_reference_date(self, service, make_snapshot):
        snapshot = make_snapshot(days_overdue=45)

        result = service.recalculate(snapshot, reference_date=date(2025, 7, 30))

        assert result.analysis.days_overdue == 75

    def test_first_run_records_state_without_alert(self, service, selector, make_snapshot):
        result = service.recalculate(make_snapshot(days_overdue=105, classification="C2"))

        assert result.alerts == ()
        assert result.evaluation.is_first_calculation
        state = selector.milestone_state("CTR-001")
        assert state.milestone is Milestone.FAVORAVEL
        assert state.percentage == Decimal("40.2")

    def test_settlement_suggested(self, service, make_snapshot):
        result = service.recalculate(make_snapshot(days_overdue=490, classification="C2"))

        assert result.analysis.adjusted_percentage == Decimal("91.0")
        assert result.settlement.premium_rule_applied
        assert result.settlement.proposal_value == Decimal("1000.00")

    def test_failed_calculation_persists_nothing(self, service, selector, session, make_snapshot):
        result = service.recalculate(make_snapshot(classification="C7"))

        assert not result.is_success
        assert result.errors[0].code == IssueCode.UNKNOWN_CLASSIFICATION
        assert selector.latest_analysis("CTR-001") is None
        assert selector.milestone_state("CTR-001") is None
        assert session.scalars(select(ProvisioningAnalysisModel)).all() == []

    def test_warnings_returned(self, service, make_snapshot):
        result = service.recalculate(make_snapshot(days_overdue=None, default_date="31/02/2025"))

        assert result.is_success
        assert [w.code for w in result.warnings] == [IssueCode.INVALID_DATE]

    def test_analysis_recorded_log(self, service, make_snapshot, captured_logs):
        service.recalculate(make_snapshot(contract_id="CTR-LOG"))

        records = [r for r in captured_logs() if r["message"] == "analysis_recorded"]
        assert len(records) == 1
        assert records[0]["contract_id"] == "CTR-LOG"
        assert Decimal(records[0]["adjusted_percentage"]) == Decimal("3.0")
        assert records[0]["config_checksum"] == service.reference_data.checksum
        assert records[0]["reference_date"] == "2025-06-30"
        assert records[0]["credit_stage"] == 2
        assert records[0]["default_triggers"] == []
        assert records[0]["expected_loss"] == "900.00"


class TestMilestoneAlerts:
    def test_skipped_thresholds_per_threshold(self, skip_to_premium, selector):
        result = skip_to_premium()

        assert [a.new_milestone for a in result.alerts] == [
            Milestone.MUITO_FAVORAVEL,
            Milestone.OTIMO,
            Milestone.PREMIUM,
        ]
        assert result.alerts[-1].alert_type is AlertType.PREMIUM_REACHED
        assert all(a.analysis_id == result.analysis.analysis_id for a in result.alerts)

        persisted = selector.alerts("CTR-001")
        assert [(a.previous_milestone, a.new_milestone) for a in persisted] == [
            (Milestone.FAVORAVEL, Milestone.MUITO_FAVORAVEL),
            (Milestone.MUITO_FAVORAVEL, Milestone.OTIMO),
            (Milestone.OTIMO, Milestone.PREMIUM),
        ]
        assert selector.milestone_state("CTR-001").milestone is Milestone.PREMIUM

    def test_skipped_thresholds_direct(
        self, session, reference_data, deterministic_clock, skip_to_premium, selector,
    ):
        direct = ProvisioningService(
            session, reference_data, clock=deterministic_clock, alert_policy=AlertPolicy.DIRECT,
        )

        result = skip_to_premium(direct)

        assert len(result.alerts) == 1
        alert = result.alerts[0]
        assert alert.previous_milestone is Milestone.FAVORAVEL
        assert alert.new_milestone is Milestone.PREMIUM
        assert alert.previous_percentage == Decimal("40.2")
        assert alert.new_percentage == Decimal("91.0")
        assert len(selector.alerts("CTR-001")) == 1

    def test_same_milestone_no_alert(self, service, make_snapshot):
        service.recalculate(make_snapshot(days_overdue=105, classification="C2"))
        result = service.recalculate(make_snapshot(days_overdue=110, classification="C2"))

        assert result.alerts == ()

    def test_regression_keeps_recorded_milestone(self, service, selector, make_snapshot):
        service.recalculate(make_snapshot(days_overdue=490, classification="C2"))
        result = service.recalculate(make_snapshot(days_overdue=105, classification="C2"))

        assert result.alerts == ()
        assert result.evaluation.regressed
        state = selector.milestone_state("CTR-001")
        assert state.milestone is Milestone.PREMIUM
        assert state.percentage == Decimal("40.2")

    def test_alert_logged_with_contract_context(self, skip_to_premium, captured_logs):
        skip_to_premium()

        raised = [r for r in captured_logs() if r["message"] == "milestone_alert_raised"]
        assert [r["new_milestone"] for r in raised] == ["muito_favoravel", "otimo", "premium"]
        assert {r["contract_id"] for r in raised} == {"CTR-001"}


class TestAlertReadLifecycle:
    def test_mark_alert_read(self, service, selector, skip_to_premium, deterministic_clock):
        alerts = skip_to_premium().alerts
        deterministic_clock.advance(30)

        read = service.mark_alert_read(alerts[0].alert_id)

        assert read.is_read
        assert read.read_at == deterministic_clock.now()
        unread_ids = {a.alert_id for a in selector.unread_alerts("CTR-001")}
        assert unread_ids == {alerts[1].alert_id, alerts[2].alert_id}

    def test_mark_read_twice_keeps_first_timestamp(self, service, skip_to_premium, deterministic_clock):
        alert_id = skip_to_premium().alerts[0].alert_id
        first = service.mark_alert_read(alert_id)
        deterministic_clock.advance(3600)

        second = service.mark_alert_read(alert_id)

        assert second.read_at == first.read_at

    def test_reloaded_read_at_is_utc_aware(
        self, service, selector, session, skip_to_premium, deterministic_clock,
    ):
        alert_id = skip_to_premium().alerts[0].alert_id
        read = service.mark_alert_read(alert_id)
        session.expire_all()

        reloaded = service.mark_alert_read(alert_id)

        assert reloaded.read_at == read.read_at == deterministic_clock.now()
        assert reloaded.read_at.utcoffset() is not None
        assert reloaded.alerted_at.utcoffset() is not None
        assert selector.require_latest_analysis("CTR-001").calculated_at <= reloaded.read_at

    def test_unknown_alert(self, service):
        missing = uuid4()

        with pytest.raises(AlertNotFoundError) as exc_info:
            service.mark_alert_read(missing)

        assert exc_info.value.alert_id == str(missing)
        assert exc_info.value.code == "ALERT_NOT_FOUND"

    def test_mark_all_read(self, service, selector, skip_to_premium):
        skip_to_premium()

        assert service.mark_all_alerts_read() == 3
        assert selector.unread_alerts() == []
        assert service.mark_all_alerts_read() == 0

    def test_mark_all_read_for_one_contract(self, service, selector, skip_to_premium, make_snapshot):
        skip_to_premium()
        service.recalculate(make_snapshot(contract_id="CTR-002", days_overdue=105, classification="C2"))
        service.recalculate(make_snapshot(contract_id="CTR-002", days_overdue=300, classification="C2"))

        marked = service.mark_all_alerts_read("CTR-002")

        assert marked == len(selector.alerts("CTR-002"))
        assert len(selector.unread_alerts("CTR-001")) == 3
        assert selector.unread_alerts("CTR-002") == []


class TestSelectors:
    def test_require_latest_analysis_missing(self, selector):
        with pytest.raises(AnalysisNotFoundError):
            selector.require_latest_analysis("CTR-NONE")

    def test_history_oldest_first(self, service, selector, make_snapshot, deterministic_clock):
        first = service.recalculate(make_snapshot(days_overdue=10))
        deterministic_clock.advance_days(1)
        second = service.recalculate(make_snapshot(days_overdue=11))

        history = selector.analysis_history("CTR-001")

        assert [a.analysis_id for a in history] == [
            first.analysis.analysis_id,
            second.analysis.analysis_id,
        ]
        assert selector.latest_analysis("CTR-001").analysis_id == second.analysis.analysis_id

    def test_unread_alerts_newest_first(self, selector, skip_to_premium):
        alerts = skip_to_premium().alerts

        unread = selector.unread_alerts("CTR-001")

        assert [a.alert_id for a in unread] == [a.alert_id for a in reversed(alerts)]


class TestImmutability:
    def test_analysis_update_rejected(self, service, session, make_snapshot):
        analysis_id = service.recalculate(make_snapshot()).analysis.analysis_id
        model = session.get(ProvisioningAnalysisModel, analysis_id)

        model.adjusted_percentage = Decimal("0.5")

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_analysis_delete_rejected(self, service, session, make_snapshot):
        analysis_id = service.recalculate(make_snapshot()).analysis.analysis_id
        session.delete(session.get(ProvisioningAnalysisModel, analysis_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_alert_content_update_rejected(self, session, skip_to_premium):
        alert_id = skip_to_premium().alerts[0].alert_id
        model = session.get(ProvisionAlertModel, alert_id)

        model.message = "edited"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert "message" in exc_info.value.reason

    def test_alert_delete_rejected(self, session, skip_to_premium):
        alert_id = skip_to_premium().alerts[0].alert_id
        session.delete(session.get(ProvisionAlertModel, alert_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_milestone_state_regression_rejected(self, service, session, make_snapshot):
        service.recalculate(make_snapshot(days_overdue=490, classification="C2"))
        state = session.scalars(
            select(ContractMilestoneStateModel).where(
                ContractMilestoneStateModel.contract_id == "CTR-001"
            )
        ).one()

        state.milestone = Milestone.FAVORAVEL.value

        with pytest.raises(MilestoneRegressionError) as exc_info:
            session.flush()
        assert exc_info.value.recorded == "premium"
        assert exc_info.value.attempted == "favoravel"
