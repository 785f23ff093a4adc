from typing import Dict, Union

from hostel_assistant.services.language_service import DEFAULT_LANGUAGE, Language

STAFF_CONTACT = "+60 10-308 4289"

TEMPLATES: Dict[str, Dict[Language, str]] = {
    "greeting": {
        Language.EN: "Hi there! Welcome to Pelangi Capsule Hostel. How can I help you today?",
        Language.MS: "Hai! Selamat datang ke Pelangi Capsule Hostel. Bagaimana saya boleh bantu?",
        Language.ZH: "你好！欢迎来到Pelangi胶囊旅馆。有什么可以帮到你的吗？",
    },
    "thanks": {
        Language.EN: "You're welcome! Feel free to ask if you need anything else.",
        Language.MS: "Sama-sama! Jangan segan untuk bertanya jika perlukan apa-apa lagi.",
        Language.ZH: "不客气！如果还有其他问题，请随时问我。",
    },
    "unavailable": {
        Language.EN: f"I'm temporarily unavailable. Please contact staff directly at {STAFF_CONTACT}.",
        Language.MS: f"Maaf, saya tidak dapat membantu buat masa ini. Sila hubungi staf di {STAFF_CONTACT}.",
        Language.ZH: f"抱歉，我暂时无法服务。请直接联系工作人员 {STAFF_CONTACT}。",
    },
    "rate_limited": {
        Language.EN: "You're sending messages too quickly. Please wait a moment and try again.",
        Language.MS: "Anda menghantar mesej terlalu cepat. Sila tunggu sebentar dan cuba lagi.",
        Language.ZH: "您发送消息太快了，请稍等片刻再试。",
    },
    "error": {
        Language.EN: f"Sorry, something went wrong. Please try again or contact staff at {STAFF_CONTACT}.",
        Language.MS: f"Maaf, ada masalah teknikal. Sila cuba lagi atau hubungi staf di {STAFF_CONTACT}.",
        Language.ZH: f"抱歉，出现了一些问题。请重试或联系工作人员 {STAFF_CONTACT}。",
    },
    "escalating": {
        Language.EN: "I'm connecting you with our team. Someone will respond shortly!",
        Language.MS: "Saya menghubungkan anda dengan pasukan kami. Seseorang akan membalas sebentar lagi!",
        Language.ZH: "正在为您转接我们的团队，马上会有人回复您！",
    },
}


def get_template(key: str, language: Union[Language, str] = DEFAULT_LANGUAGE) -> str:
    """Return the template text for key in language, falling back to English; empty for unknown keys."""
    template = TEMPLATES.get(key)
    if not template:
        return ""
    try:
        language = Language(language)
    except ValueError:
        language = DEFAULT_LANGUAGE
    return template.get(language) or template[DEFAULT_LANGUAGE]
