# Einfaches Übersetzungssystem für Deutsch / Englisch.
# tr(key) gibt den String in der aktuell gesetzten Sprache zurück.

from __future__ import annotations

from typing import Literal

Lang = Literal["de", "en"]

_current: Lang = "de"


def set_language(lang: Lang) -> None:
    global _current
    _current = lang if lang in ("de", "en") else "de"


def get_language() -> Lang:
    return _current


def tr(key: str) -> str:
    entry = _STRINGS.get(key)
    if entry is None:
        return key
    return entry.get(_current, entry.get("en", key))


_STRINGS: dict[str, dict[str, str]] = {
    # ── Auswahl ────────────────────────────────────────────────────────────
    "drop.empty":    {"de": ".ts-Dateien hierher ziehen oder klicken",
                      "en": "Drop .ts files here or click to choose"},
    "drop.selected": {"de": "{count} Datei(en) ausgewählt", "en": "{count} file(s) selected"},
    "btn.start":     {"de": "Konvertieren",  "en": "Convert"},
    "btn.browse":    {"de": "Wählen",        "en": "Browse"},
    # ── Einstellungen ──────────────────────────────────────────────────────
    "grp.encoding": {"de": "Kodierung",       "en": "Encoding"},
    "grp.output":   {"de": "Ausgabe",         "en": "Output"},
    "grp.lang":     {"de": "Sprache",         "en": "Language"},
    "grp.log":      {"de": "Protokoll",       "en": "Log"},
    "lbl.crf":      {"de": "Qualität (CRF):", "en": "Quality (CRF):"},
    "lbl.preset":   {"de": "Preset:",         "en": "Preset:"},
    "lbl.abitrate": {"de": "Audio-Bitrate:",  "en": "Audio bitrate:"},
    "placeholder.output": {"de": "Ausgabe-Ordner wählen...", "en": "Choose output folder..."},
    # ── Status ─────────────────────────────────────────────────────────────
    "status.loading":      {"de": "ffmpeg: wird geladen…",        "en": "ffmpeg: loading…"},
    "status.ready":        {"de": "ffmpeg: bereit",               "en": "ffmpeg: ready"},
    "status.init_failed":  {"de": "ffmpeg: konnte nicht laden",   "en": "ffmpeg: failed to load"},
    "status.crashed":      {"de": "ffmpeg: Worker-Fehler",        "en": "ffmpeg: worker error"},
    "status.converting":   {"de": "konvertiere…",                 "en": "converting…"},
    "status.done":         {"de": "fertig ✔",                     "en": "done ✔"},
    "status.error":        {"de": "Fehler",                       "en": "error"},
    # ── Datei-Dialoge ──────────────────────────────────────────────────────
    "fdlg.select_files":  {"de": "TS-Dateien auswählen",  "en": "Select TS Files"},
    "fdlg.ts_filter":     {"de": "MPEG-TS-Dateien",       "en": "MPEG-TS files"},
    "fdlg.all_files":     {"de": "Alle Dateien",          "en": "All files"},
    "fdlg.output_folder": {"de": "Ausgabe-Ordner wählen", "en": "Choose Output Folder"},
    # ── Dialoge / Meldungen ────────────────────────────────────────────────
    "dlg.pick_ts_title":    {"de": "Keine TS-Dateien", "en": "No TS Files"},
    "dlg.pick_ts_msg":      {"de": "Bitte .ts-Dateien auswählen.", "en": "Pick .ts files."},
    "dlg.output_title":     {"de": "Ausgabe-Ordner",             "en": "Output Folder"},
    "dlg.output_choose":    {"de": "Bitte einen Ausgabe-Ordner wählen.",
                             "en": "Please choose an output folder."},
    "dlg.output_not_found": {"de": "Ordner existiert nicht:\n", "en": "Folder does not exist:\n"},
    "dlg.output_no_write":  {"de": "Kein Schreibzugriff auf:\n","en": "No write access to:\n"},
    "dlg.error_title":      {"de": "Fehler", "en": "Error"},
    "dlg.init_failed":      {
        "de": "ffmpeg konnte nicht initialisiert werden. Details im Protokoll.",
        "en": "ffmpeg failed to initialize. Check logs for details.",
    },
    "dlg.job_failed":       {"de": "Konvertierung fehlgeschlagen:\n\n", "en": "Conversion failed:\n\n"},
    "dlg.save_failed":      {"de": "Ergebnis konnte nicht gespeichert werden:\n\n",
                             "en": "Could not save the result:\n\n"},
    "dlg.backend_title":    {"de": "Worker-Startfehler", "en": "Worker Start Error"},
    "dlg.backend_msg":      {"de": "Der Worker-Prozess konnte nicht gestartet werden:\n\n",
                             "en": "The worker process could not be started:\n\n"},
    "log.saved":            {"de": "Gespeichert: {path}", "en": "Saved {path}"},
}
