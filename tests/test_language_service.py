from hostel_assistant.services.language_service import Language, detect_language


class TestDetectLanguage:
    def test_empty_text_defaults_to_english(self):
        assert detect_language("") == Language.EN

    def test_plain_english(self):
        assert detect_language("What time is check in?") == Language.EN

    def test_chinese_characters_win(self):
        assert detect_language("你好 saya nak bilik") == Language.ZH

    def test_malay_needs_two_keywords(self):
        assert detect_language("berapa harga bilik") == Language.MS

    def test_single_malay_keyword_is_not_enough(self):
        assert detect_language("harga") == Language.EN

    def test_returns_plain_string_values(self):
        assert detect_language("谢谢").value == "zh"
