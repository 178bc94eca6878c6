"""Source type → adapter builder. The single place new integrations are wired in."""
from typing import Callable, Dict, List

from lifelog.config import Settings
from lifelog.sources.demo import DemoSource
from lifelog.sources.garmin.activities import GarminActivitiesSource
from lifelog.sources.hardcover.books import HardcoverBooksSource
from lifelog.sources.lastfm.daily_counts import DailyScrobbleCountsSource
from lifelog.sources.lastfm.top_scrobbles import TopScrobblesSource
from lifelog.sources.lastfm.weekly_charts import WeeklyChartsSource
from lifelog.sources.letterboxd.diary import LetterboxdDiarySource
from lifelog.sources.spotify.playlists import SpotifyPlaylistsSource, SpotifySinglePlaylistSource
from lifelog.sync.base import SourceAdapter
from lifelog.sync.errors import UnknownSourceError

AdapterBuilder = Callable[[Settings, object], SourceAdapter]

SOURCES: Dict[str, AdapterBuilder] = {
    DailyScrobbleCountsSource.source_type: lambda settings, engine: DailyScrobbleCountsSource(engine, settings=settings),
    WeeklyChartsSource.source_type: lambda settings, engine: WeeklyChartsSource(engine, settings=settings),
    TopScrobblesSource.source_type: lambda settings, engine: TopScrobblesSource(engine, settings=settings),
    SpotifyPlaylistsSource.source_type: lambda settings, engine: SpotifyPlaylistsSource(engine, settings=settings),
    SpotifySinglePlaylistSource.source_type: lambda settings, engine: SpotifySinglePlaylistSource(engine, settings=settings),
    GarminActivitiesSource.source_type: lambda settings, engine: GarminActivitiesSource(engine, settings=settings),
    HardcoverBooksSource.source_type: lambda settings, engine: HardcoverBooksSource(engine, settings=settings),
    LetterboxdDiarySource.source_type: lambda settings, engine: LetterboxdDiarySource(engine, settings=settings),
    DemoSource.source_type: lambda settings, engine: DemoSource(settings.demo_scenario),
}


def available_sources() -> List[str]:
    return sorted(SOURCES)


def build_adapter(source_type: str, settings: Settings, engine) -> SourceAdapter:
    """
    Raises:
        UnknownSourceError: if no adapter is registered under source_type.
    """
    try:
        builder = SOURCES[source_type]
    except KeyError:
        raise UnknownSourceError(source_type) from None
    return builder(settings, engine)
