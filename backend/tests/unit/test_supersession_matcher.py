"""Unit tests for supersession lookup of discontinued parts"""

import pytest

from domain.ai import LLMServiceError
from matching.supersession_matcher import SupersessionMatcher, supersession_confidence
from models.ai_call_log import AICallLog, AICallStatus
from models.master_rule import MasterRule, MasterRuleType, RuleScope
from models.match_candidate import MatchMethod, MatchStatus, TargetType
from models.matching_job import JobStatus, JobType, MatchingJob


def _matcher(db_session, provider, **kwargs):
    kwargs.setdefault("sleep", lambda seconds: None)
    return SupersessionMatcher(db_session, provider, **kwargs)


class TestSupersessionConfidence:

    def test_discounted(self):
        assert supersession_confidence(0.9, 0.85, 0.8) == pytest.approx(0.765)

    def test_capped(self):
        assert supersession_confidence(1.0, 0.85, 0.8) == 0.8


class TestSupersessionMatcher:
    """Test replacement lookup, filtering and budget handling"""

    def test_replacement_in_catalog_proposed(self, db_session, project, make_store_item, make_supplier_item,
                                             make_provider, candidates_for):
        """Test a known replacement found in the catalog becomes a pending candidate"""
        store = make_store_item("OLD-100", "DOR", description="Oil pan drain plug")
        supplier = make_supplier_item("NEW-200", "DOR")
        provider = make_provider(supersessions={"OLD-100": ("new 200", "DOR", 0.9)})

        result = _matcher(db_session, provider).run(project.id, [store.id])
        db_session.commit()

        assert result.processed == 1
        assert result.candidates_created == 1
        [candidate] = candidates_for(store.id)
        assert candidate.target_type == TargetType.SUPPLIER
        assert candidate.target_id == str(supplier.id)
        assert candidate.method == MatchMethod.SUPERSESSION
        assert candidate.status == MatchStatus.PENDING
        assert candidate.confidence == pytest.approx(0.765)
        assert candidate.features["original_part"] == "OLD-100"
        assert candidate.features["replacement_part"] == "new 200"
        [log] = db_session.query(AICallLog).all()
        assert log.call_type == "LLM_SUPERSESSION"
        assert log.status == AICallStatus.SUCCEEDED

    def test_certain_answer_still_capped(self, db_session, project, make_store_item, make_supplier_item,
                                         make_provider, candidates_for):
        """Test even a fully confident replacement stays below auto-confirmation"""
        store = make_store_item("OLD-100")
        make_supplier_item("NEW-200")
        provider = make_provider(supersessions={"OLD-100": ("NEW-200", "unknown", 1.0)})

        _matcher(db_session, provider).run(project.id, [store.id])
        db_session.commit()

        [candidate] = candidates_for(store.id)
        assert candidate.confidence == 0.8
        assert candidate.status == MatchStatus.PENDING

    def test_low_confidence_ignored(self, db_session, project, make_store_item, make_supplier_item,
                                    make_provider, candidates_for):
        """Test an unsure replacement proposes nothing"""
        store = make_store_item("OLD-100")
        make_supplier_item("NEW-200")
        provider = make_provider(supersessions={"OLD-100": ("NEW-200", None, 0.4)})

        result = _matcher(db_session, provider).run(project.id, [store.id])
        db_session.commit()

        assert result.processed == 1
        assert result.candidates_created == 0
        assert candidates_for(store.id) == []

    def test_not_superseded(self, db_session, project, make_store_item, make_provider, candidates_for):
        """Test a part the model considers current yields nothing"""
        store = make_store_item("OLD-100")

        result = _matcher(db_session, make_provider()).run(project.id, [store.id])
        db_session.commit()

        assert result.candidates_created == 0
        assert db_session.query(AICallLog).count() == 1

    def test_replacement_from_other_manufacturer_ignored(self, db_session, project, make_store_item,
                                                         make_supplier_item, make_provider, candidates_for):
        """Test the replacement must come from the manufacturer the model named"""
        store = make_store_item("OLD-100", "DOR")
        make_supplier_item("NEW-200", "MOT")
        provider = make_provider(supersessions={"OLD-100": ("NEW-200", "DOR", 0.9)})

        _matcher(db_session, provider).run(project.id, [store.id])
        db_session.commit()

        assert candidates_for(store.id) == []

    def test_replacement_outside_catalog_ignored(self, db_session, project, make_store_item, make_provider,
                                                 candidates_for):
        """Test a replacement with no supplier item proposes nothing"""
        store = make_store_item("OLD-100")
        provider = make_provider(supersessions={"OLD-100": ("NEW-200", None, 0.9)})

        _matcher(db_session, provider).run(project.id, [store.id])
        db_session.commit()

        assert candidates_for(store.id) == []

    def test_provider_error_logged(self, db_session, project, make_store_item, make_provider, candidates_for):
        """Test a failed lookup counts an error and logs a FAILED call"""
        store = make_store_item("OLD-100")
        provider = make_provider(supersessions={"OLD-100": LLMServiceError("upstream 503")})

        result = _matcher(db_session, provider).run(project.id, [store.id])
        db_session.commit()

        assert result.errors == 1
        assert candidates_for(store.id) == []
        [log] = db_session.query(AICallLog).all()
        assert log.status == AICallStatus.FAILED

    def test_blocked_pair_not_proposed(self, db_session, project, make_store_item, make_supplier_item,
                                       make_provider, candidates_for):
        """Test block rules apply to replacements"""
        store = make_store_item("OLD-100")
        make_supplier_item("NEW-200")
        db_session.add(MasterRule(
            rule_type=MasterRuleType.NEGATIVE_BLOCK, scope=RuleScope.GLOBAL,
            store_part_number="OLD-100", store_part_key="OLD100",
            supplier_part_number="NEW-200", supplier_part_key="NEW200",
        ))
        db_session.commit()
        provider = make_provider(supersessions={"OLD-100": ("NEW-200", None, 0.9)})

        result = _matcher(db_session, provider).run(project.id, [store.id])

        assert result.rejected_pairs == 1
        assert candidates_for(store.id) == []

    def test_cost_ceiling_stops_stage(self, db_session, project, make_store_item, make_provider):
        """Test lookups share the job's cost ceiling"""
        items = [make_store_item(f"PN-{n}") for n in range(3)]
        job = MatchingJob(
            project_id=project.id,
            job_type=JobType.SUPERSESSION,
            status=JobStatus.PROCESSING,
            config={"ai_cost_ceiling_micros": 1500},
        )
        db_session.add(job)
        db_session.commit()
        provider = make_provider(cost_micros=1000)

        result = _matcher(db_session, provider).run(project.id, [item.id for item in items], job.id)
        db_session.commit()

        assert result.budget_exhausted is True
        assert result.processed == 2
        assert len(provider.requests) == 2
        assert result.unprocessed_item_ids == [sorted(item.id for item in items)[2]]
