"""Unit tests for built-in flow templates."""

import pytest

from callflow_core.flows import (
    FlowValidator,
    NodeType,
    NotFoundError,
    build_template,
    check_document,
    graph_to_document,
    list_templates,
)
from callflow_core.flows.templates import basic_greeting


class TestBasicGreeting:
    """Tests for the greeting template."""

    def test_structure(self):
        """Test start -> listen -> end."""
        graph = basic_greeting("Autohaus Berger")

        assert [n.type for n in graph.nodes.values()] == [
            NodeType.START,
            NodeType.LISTEN,
            NodeType.END,
        ]
        slots = sorted(c.slot for c in graph.connections if c.source == "listen_001")
        assert slots == ["noInput", "success", "timeout"]

    def test_company_name_in_texts(self):
        """Test texts are personalized."""
        graph = basic_greeting("Autohaus Berger")

        assert "Autohaus Berger" in graph.nodes["start_001"].config.greeting_message
        assert "Autohaus Berger" in graph.settings.system_prompt
        assert graph.metadata.name == "Autohaus Berger Begrüßungsflow"

    def test_overrides(self):
        """Test greeting and prompt overrides."""
        graph = basic_greeting(
            "Autohaus Berger",
            greeting_message="Servus!",
            system_prompt="Du bist der Assistent vom Autohaus.",
        )

        assert graph.nodes["start_001"].config.greeting_message == "Servus!"
        assert graph.settings.system_prompt == "Du bist der Assistent vom Autohaus."

    def test_validates(self, validator: FlowValidator):
        """Test the template passes validation without issues."""
        result = validator.validate(basic_greeting("Autohaus Berger"))

        assert result.is_valid
        assert result.warnings == ()

    def test_document_conforms(self):
        """Test the template serializes to a conformant document."""
        assert check_document(graph_to_document(basic_greeting("Autohaus Berger"))) == []


class TestTemplateLookup:
    """Tests for the template catalogue."""

    def test_list(self):
        """Test the catalogue contents."""
        assert [t.id for t in list_templates()] == ["basic_greeting"]
        assert set(list_templates()[0].to_dict()) == {"id", "name", "description"}

    def test_build(self):
        """Test building by id with options."""
        graph = build_template("basic_greeting", company_name="Bäckerei Maier")

        assert "start_001" in graph.nodes

    def test_unknown(self):
        """Test unknown template ids."""
        with pytest.raises(NotFoundError):
            build_template("survey")
