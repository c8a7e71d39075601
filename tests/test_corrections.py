"""Tests for correction links."""

import pytest

from agentic_os.corrections import CorrectionGraph
from agentic_os.errors import ValidationError
from agentic_os.models import CorrectionKind, LinkStatus, Provider, ResponseNode


@pytest.fixture
def nodes():
    return (
        ResponseNode(Provider.OPENAI, "p"),
        ResponseNode(Provider.GEMINI, "p"),
        ResponseNode(Provider.QWEN, "p"),
    )


class TestCreate:
    def test_new_link_is_pending(self, nodes):
        a, b, _ = nodes
        link = CorrectionGraph().create(a, b, CorrectionKind.CODE_REVIEW)

        assert link.status is LinkStatus.PENDING
        assert link.feedback is None
        assert (link.source_provider, link.target_provider) == (Provider.OPENAI, Provider.GEMINI)

    def test_kind_from_string(self, nodes):
        a, b, _ = nodes
        assert CorrectionGraph().create(a, b, "fact-check").kind is CorrectionKind.FACT_CHECK

    @pytest.mark.parametrize("kind", list(CorrectionKind))
    def test_self_link_rejected(self, nodes, kind):
        graph = CorrectionGraph()
        with pytest.raises(ValidationError):
            graph.create(nodes[0], nodes[0], kind)
        assert len(graph) == 0

    def test_unknown_kind_rejected(self, nodes):
        with pytest.raises(ValidationError, match="Unknown correction kind"):
            CorrectionGraph().create(nodes[0], nodes[1], "translation")


class TestUpdate:
    def test_status_and_feedback(self, nodes):
        graph = CorrectionGraph()
        link = graph.create(nodes[0], nodes[1], CorrectionKind.CODE_REVIEW)

        graph.update(link.id, status="completed", feedback="LGTM")

        assert link.status is LinkStatus.COMPLETED
        assert link.feedback == "LGTM"
        assert link.source_node_id == nodes[0].id

    def test_feedback_only_keeps_status(self, nodes):
        graph = CorrectionGraph()
        link = graph.create(nodes[0], nodes[1], CorrectionKind.OPTIMIZATION)

        graph.update(link.id, feedback="use a set")

        assert link.status is LinkStatus.PENDING

    def test_unknown_link_is_a_no_op(self):
        assert CorrectionGraph().update("missing", status=LinkStatus.ERROR) is None


class TestRemoval:
    def test_remove_links_touching(self, nodes):
        a, b, c = nodes
        graph = CorrectionGraph()
        ab = graph.create(a, b, CorrectionKind.CODE_REVIEW)
        cb = graph.create(c, b, CorrectionKind.FACT_CHECK)
        ac = graph.create(a, c, CorrectionKind.OPTIMIZATION)

        removed = graph.remove_links_touching(b.id)

        assert sorted(removed) == sorted([ab.id, cb.id])
        assert graph.links() == (ac,)

    def test_prune(self, nodes):
        a, b, c = nodes
        graph = CorrectionGraph()
        graph.create(a, b, CorrectionKind.CODE_REVIEW)
        keep = graph.create(b, c, CorrectionKind.CODE_REVIEW)

        graph.prune({b.id, c.id})

        assert graph.links() == (keep,)
