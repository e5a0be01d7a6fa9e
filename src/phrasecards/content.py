"""Static phrase table and per-language display metadata."""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Tuple

from phrasecards.models.progress_models import Language, Phrase, ProficiencyLevel


@dataclass(frozen=True)
class ThemePalette:
    """Colours used when a language is selected."""
    primary: str
    secondary: str
    gradient_start: str
    gradient_end: str
    background: str = "#ffffff"
    paper: str = "#ffffff"


@dataclass(frozen=True)
class LanguageInfo:
    """Display metadata for a language."""
    name: str
    flag: str
    code: str
    speech_locale: str
    palette: ThemePalette
    levels: Tuple[ProficiencyLevel, ...] = tuple(ProficiencyLevel)


LANGUAGES: Mapping[Language, LanguageInfo] = MappingProxyType({
    Language.SWEDISH: LanguageInfo(
        name="Swedish",
        flag="\U0001F1F8\U0001F1EA",
        code="sv",
        speech_locale="sv-SE",
        palette=ThemePalette(
            primary="#006AA7",  # flag blue
            secondary="#FECC02",  # flag yellow
            gradient_start="#006AA7",
            gradient_end="#0086D4",
        ),
    ),
    Language.GERMAN: LanguageInfo(
        name="German",
        flag="\U0001F1E9\U0001F1EA",
        code="de",
        speech_locale="de-DE",
        palette=ThemePalette(
            primary="#DD0000",  # flag red
            secondary="#FFCE00",  # flag gold
            gradient_start="#DD0000",
            gradient_end="#FF1A1A",
        ),
    ),
})


def _phrase(original: str, english: str, slug: str, code: str, level: str) -> Phrase:
    return Phrase(
        original=original,
        english=english,
        audio_ref=f"/audio/{code}/{slug}.mp3",
        level=ProficiencyLevel(level),
    )


_SWEDISH = (
    # A1 - basic phrases
    ("Hej", "Hello", "hej", "A1"),
    ("Tack", "Thank you", "tack", "A1"),
    ("Ja", "Yes", "ja", "A1"),
    ("Nej", "No", "nej", "A1"),
    ("God morgon", "Good morning", "god-morgon", "A1"),
    ("God natt", "Good night", "god-natt", "A1"),
    ("Hur mår du?", "How are you?", "hur-mar-du", "A1"),
    ("Jag mår bra", "I'm fine", "jag-mar-bra", "A1"),
    ("Vad heter du?", "What's your name?", "vad-heter-du", "A1"),
    ("Jag heter", "My name is", "jag-heter", "A1"),
    # A2 - basic conversations
    ("Var bor du?", "Where do you live?", "var-bor-du", "A2"),
    ("Jag bor i", "I live in", "jag-bor-i", "A2"),
    ("Vad gör du?", "What are you doing?", "vad-gor-du", "A2"),
    ("Jag arbetar", "I'm working", "jag-arbetar", "A2"),
    ("Jag studerar", "I'm studying", "jag-studerar", "A2"),
    # B1 - more complex phrases
    ("Jag skulle vilja", "I would like to", "jag-skulle-vilja", "B1"),
    ("Kan du hjälpa mig?", "Can you help me?", "kan-du-hjalpa-mig", "B1"),
    ("Jag förstår inte", "I don't understand", "jag-forstar-inte", "B1"),
    ("Kan du upprepa?", "Can you repeat that?", "kan-du-upprepa", "B1"),
    ("Talar du engelska?", "Do you speak English?", "talar-du-engelska", "B1"),
)

_GERMAN = (
    # A1 - basic phrases
    ("Hallo", "Hello", "hallo", "A1"),
    ("Danke", "Thank you", "danke", "A1"),
    ("Ja", "Yes", "ja", "A1"),
    ("Nein", "No", "nein", "A1"),
    ("Guten Morgen", "Good morning", "guten-morgen", "A1"),
    ("Gute Nacht", "Good night", "gute-nacht", "A1"),
    ("Wie geht es dir?", "How are you?", "wie-geht-es-dir", "A1"),
    ("Mir geht es gut", "I'm fine", "mir-geht-es-gut", "A1"),
    ("Wie heißt du?", "What's your name?", "wie-heisst-du", "A1"),
    ("Ich heiße", "My name is", "ich-heisse", "A1"),
    # A2 - basic conversations
    ("Wo wohnst du?", "Where do you live?", "wo-wohnst-du", "A2"),
    ("Ich wohne in", "I live in", "ich-wohne-in", "A2"),
    ("Was machst du?", "What are you doing?", "was-machst-du", "A2"),
    ("Ich arbeite", "I'm working", "ich-arbeite", "A2"),
    ("Ich studiere", "I'm studying", "ich-studiere", "A2"),
    # B1 - more complex phrases
    ("Ich möchte", "I would like to", "ich-mochte", "B1"),
    ("Kannst du mir helfen?", "Can you help me?", "kannst-du-mir-helfen", "B1"),
    ("Ich verstehe nicht", "I don't understand", "ich-verstehe-nicht", "B1"),
    ("Kannst du das wiederholen?", "Can you repeat that?", "kannst-du-das-wiederholen", "B1"),
    ("Sprichst du Englisch?", "Do you speak English?", "sprichst-du-englisch", "B1"),
)

PHRASES: Mapping[Language, Tuple[Phrase, ...]] = MappingProxyType({
    Language.SWEDISH: tuple(_phrase(o, e, s, "sv", lvl) for o, e, s, lvl in _SWEDISH),
    Language.GERMAN: tuple(_phrase(o, e, s, "de", lvl) for o, e, s, lvl in _GERMAN),
})


def phrases_for(language: Language, level: ProficiencyLevel) -> Tuple[Phrase, ...]:
    """Phrases of one level, in the order they were registered."""
    return tuple(phrase for phrase in PHRASES[language] if phrase.level == level)


def phrase_count_for_level(language: Language, level: ProficiencyLevel) -> int:
    """Number of phrases available for a level."""
    return len(phrases_for(language, level))
