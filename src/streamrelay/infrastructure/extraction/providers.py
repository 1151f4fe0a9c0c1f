"""Provider policy: which embed origin serves a locator."""

from __future__ import annotations

from dataclasses import dataclass

from streamrelay.domain.entities import InvalidInput, MediaLocator, MediaType

_QUERY_MOVIE = "{base}/embed/movie?tmdb={id}"
_QUERY_TV = "{base}/embed/tv?tmdb={id}&season={season}&episode={episode}"
_PATH_MOVIE = "{base}/embed/movie/{id}"
_PATH_TV = "{base}/embed/tv/{id}/{season}/{episode}"


@dataclass(frozen=True)
class Provider:
    name: str
    base_url: str
    movie_template: str = _QUERY_MOVIE
    tv_template: str = _QUERY_TV

    def embed_url(self, locator: MediaLocator) -> str:
        template = (
            self.tv_template if locator.media_type is MediaType.TV else self.movie_template
        )
        return template.format(
            base=self.base_url,
            id=locator.external_id,
            season=locator.season,
            episode=locator.episode,
        )


PROVIDERS: dict[str, Provider] = {
    "vidsrc": Provider(name="vidsrc", base_url="https://vidsrc.xyz"),
    "vidsrc-net": Provider(name="vidsrc-net", base_url="https://vidsrc.net"),
    "embed.su": Provider(
        name="embed.su",
        base_url="https://embed.su",
        movie_template=_PATH_MOVIE,
        tv_template=_PATH_TV,
    ),
}

# Switch order for suggestions: vidsrc's backup is embed.su, everything
# else switches back to vidsrc first.
_SWITCH_ORDER: tuple[str, ...] = ("vidsrc", "embed.su", "vidsrc-net")


def get_provider(name: str) -> Provider:
    provider = PROVIDERS.get(name.lower())
    if provider is None:
        raise InvalidInput(
            f"unknown provider {name!r}",
            suggestions=[f"use one of: {', '.join(sorted(PROVIDERS))}"],
        )
    return provider


def alternate_providers(name: str) -> list[str]:
    """Other providers, best switch target first."""
    return [p for p in _SWITCH_ORDER if p != name.lower()]
