"""Localized user-facing texts: refusals, error fallbacks and search notes.

Every failure response still carries one of these so the widget always has
something presentable to show.
"""

TEMPLATES = {
    "id": {
        "security_blocked": (
            "Maaf, saya tidak dapat memproses permintaan tersebut. "
            "Saya di sini untuk membantu Anda mencari properti. 🏠"
        ),
        "quota_exceeded": (
            "Maaf, layanan chat sedang mencapai batas penggunaan bulan ini. "
            "Silakan hubungi agen kami secara langsung."
        ),
        "model_unavailable": (
            "Maaf, asisten kami sedang sibuk. Silakan coba lagi dalam beberapa saat."
        ),
        "invalid_request": "Maaf, pesan Anda tidak dapat diproses. Silakan coba lagi.",
        "tenant_inactive": "Maaf, layanan chat ini sedang tidak aktif.",
        "error": "Maaf, terjadi kendala di sistem kami. Silakan coba lagi nanti.",
        "quota_warning": "Penggunaan chat bulan ini sudah mencapai {percentage}% dari kuota.",
        "fallback_location": (
            "\n\nCatatan: Saya tidak menemukan hasil yang persis di \"{location}\", "
            "jadi saya memperluas pencarian ke area sekitarnya."
        ),
        "fallback_apartment": (
            "\n\nCatatan: Saya tidak menemukan rumah yang sesuai kriteria Anda, "
            "jadi saya tampilkan apartemen sebagai alternatif."
        ),
        "fallback_shophouse": (
            "\n\nCatatan: Saya tidak menemukan rumah atau apartemen yang sesuai kriteria Anda, "
            "jadi saya tampilkan ruko sebagai alternatif."
        ),
        "cobroke_disabled": "Pencarian di database kantor tidak tersedia untuk akun ini.",
        "cobroke_empty": "Tidak ada listing yang cocok di database kantor maupun nasional.",
        "search_empty": (
            "Maaf, saya belum menemukan properti yang sesuai. "
            "Coba perluas lokasi atau anggaran Anda."
        ),
        "viewing_recorded": (
            "Jadwal kunjungan Anda sudah kami catat. Konfirmasi akan dikirim segera."
        ),
        "contact_recorded": "Terima kasih! Data Anda sudah kami terima, agen kami akan segera menghubungi Anda.",
        "inquiry_recorded": "Terima kasih! Pertanyaan Anda sudah kami teruskan ke agen kami.",
        "language_instruction": "Balas dalam Bahasa Indonesia.",
    },
    "en": {
        "security_blocked": (
            "Sorry, I can't help with that request. "
            "I'm here to help you find a property. 🏠"
        ),
        "quota_exceeded": (
            "Sorry, this chat has reached its usage limit for the month. "
            "Please contact our agent directly."
        ),
        "model_unavailable": (
            "Sorry, our assistant is busy right now. Please try again in a moment."
        ),
        "invalid_request": "Sorry, I couldn't process that message. Please try again.",
        "tenant_inactive": "Sorry, this chat service is currently inactive.",
        "error": "Sorry, something went wrong on our side. Please try again later.",
        "quota_warning": "This month's chat usage has reached {percentage}% of the quota.",
        "fallback_location": (
            "\n\nNote: I couldn't find exact matches in \"{location}\", "
            "so I broadened the search to nearby areas."
        ),
        "fallback_apartment": (
            "\n\nNote: I couldn't find any houses matching your criteria, "
            "so I'm showing you apartments instead."
        ),
        "fallback_shophouse": (
            "\n\nNote: I couldn't find any houses or apartments matching your criteria, "
            "so I'm showing you shophouses instead."
        ),
        "cobroke_disabled": "Office database search is not available for this account.",
        "cobroke_empty": "No matching listings in the office or national database.",
        "search_empty": (
            "Sorry, I couldn't find a matching property yet. "
            "Try widening the location or budget."
        ),
        "viewing_recorded": (
            "Your viewing request has been recorded. Confirmation will follow shortly."
        ),
        "contact_recorded": "Thank you! We've received your details and our agent will contact you soon.",
        "inquiry_recorded": "Thank you! Your inquiry has been forwarded to our agent.",
        "language_instruction": "Reply in English.",
    },
}


def get_text(key: str, language: str = "id", **kwargs) -> str:
    """Get a localized template, formatted with ``kwargs`` when possible."""
    table = TEMPLATES.get(language, TEMPLATES["id"])
    template = table.get(key, table["error"])
    try:
        return template.format(**kwargs)
    except (KeyError, IndexError):
        return template
