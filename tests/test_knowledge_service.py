from hostel_assistant.services.knowledge_service import StaticKnowledge
from hostel_assistant.services.language_service import Language
from hostel_assistant.services.templates import STAFF_CONTACT, get_template


class TestStaticKnowledge:
    def test_loads_bundled_file(self, knowledge):
        assert set(knowledge.categories()) >= {
            "wifi",
            "directions",
            "checkin_info",
            "checkout_info",
            "pricing",
            "facilities",
            "rules",
        }

    def test_answer_in_requested_language(self, knowledge):
        assert "Kata laluan" in knowledge.get_answer("wifi", Language.MS)
        assert "ilovestaycapsule" in knowledge.get_answer("wifi", "en")

    def test_falls_back_to_english(self):
        kb = StaticKnowledge({"wifi": {"en": "Password: abc"}})
        assert kb.get_answer("wifi", Language.ZH) == "Password: abc"

    def test_missing_category(self, knowledge):
        assert knowledge.get_answer("general", Language.EN) is None

    def test_blank_entries_are_dropped(self):
        kb = StaticKnowledge({"wifi": {"en": "   "}, "rules": "not a mapping"})
        assert len(kb) == 0

    def test_missing_file_loads_empty(self, tmp_path):
        kb = StaticKnowledge.from_yaml(tmp_path / "nope.yaml")
        assert len(kb) == 0

    def test_custom_file(self, tmp_path):
        path = tmp_path / "kb.yaml"
        path.write_text("knowledge:\n  pricing:\n    en: RM10 a night\n    ms: RM10 semalam\n", encoding="utf-8")

        kb = StaticKnowledge.from_yaml(path)

        assert kb.get_answer("pricing", "ms") == "RM10 semalam"


class TestTemplates:
    def test_language_variants(self):
        assert get_template("greeting", "zh").startswith("你好")
        assert get_template("greeting", Language.MS).startswith("Hai")

    def test_unknown_language_falls_back_to_english(self):
        assert get_template("thanks", "fr") == get_template("thanks", "en")

    def test_unknown_key_is_empty(self):
        assert get_template("nope") == ""

    def test_error_mentions_staff_contact(self):
        assert STAFF_CONTACT in get_template("error")
