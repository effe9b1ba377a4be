"""Click CLI commands for citytiles."""

import asyncio
import json
import logging

import click

from . import constants
from .builder import CityModelBuilder, write_document
from .errors import CityTilesError
from .geodetic import get_geodetic_transform
from .merge import merge_features
from .models import FeatureCollection, Transform
from .vertices import extract_city_object, prune_unreferenced_vertices

logger = logging.getLogger(__name__)


def _load_json(path: str) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


@click.group()
def cli():
    """citytiles CLI for building merged CityJSON models from 3D BAG tiles."""
    pass


@cli.command()
@click.argument('lat', type=float)
@click.argument('lon', type=float)
@click.option('--output', '-o', default='city.json', help='Output CityJSON file path')
@click.option('--half-width', '-w', default=constants.BBOX_HALF_WIDTH,
              help='Half the side of the query square, in metres')
@click.option('--page-limit', default=constants.PAGE_LIMIT, help='Maximum pages to fetch')
@click.option('--prune/--no-prune', default=False, help='Drop unreferenced vertices')
@click.option('--no-cache', is_flag=True, help='Bypass the merged-document cache')
def build(lat: float, lon: float, output: str, half_width: float,
          page_limit: int, prune: bool, no_cache: bool):
    """Fetch and merge all buildings around LAT LON (WGS84 degrees)."""
    builder = CityModelBuilder(page_limit=page_limit, use_cache=not no_cache)
    asyncio.run(async_build(builder, lat, lon, output, half_width, prune))


@cli.command()
@click.argument('pages', nargs=-1, required=True, type=click.Path(exists=True))
@click.option('--output', '-o', default='merged.json', help='Output CityJSON file path')
@click.option('--prune/--no-prune', default=False, help='Drop unreferenced vertices')
def merge(pages, output: str, prune: bool):
    """Merge saved FeatureCollection PAGES (JSON files) into one CityJSON."""
    try:
        collection = None
        for index, path in enumerate(pages, start=1):
            try:
                page = FeatureCollection.from_json(_load_json(path))
            except ValueError as e:
                raise click.ClickException(f"{path}: {e}")
            if collection is None:
                collection = page
                continue
            if collection.transform is None:
                collection.transform = page.transform
            elif page.transform is not None and page.transform != collection.transform:
                raise click.ClickException(f"{path}: transform differs from {pages[0]}")
            collection.features.extend(page.features)
            collection.pages = index

        doc = merge_features(collection)
        if prune:
            doc = prune_unreferenced_vertices(doc)
        path = write_document(doc, output)
        click.echo(f"Merged {len(pages)} pages into {path}: "
                   f"{len(doc['CityObjects'])} CityObjects, {len(doc['vertices'])} vertices")
    except CityTilesError as e:
        logger.error(f"Error merging pages: {e}")
        raise click.ClickException(str(e))


@cli.command()
@click.argument('input_path', type=click.Path(exists=True))
@click.argument('object_id')
@click.option('--output', '-o', default='building.json', help='Output CityJSON file path')
def extract(input_path: str, object_id: str, output: str):
    """Extract one CityObject (and its parts) from a merged CityJSON file."""
    doc = _load_json(input_path)
    try:
        extracted = extract_city_object(doc, object_id)
    except KeyError:
        sample = list(doc.get("CityObjects", {}))[:10]
        raise click.ClickException(
            f"{object_id} not found. First ids: {', '.join(sample)}")
    path = write_document(extracted, output)
    click.echo(f"Extracted {object_id}: {len(extracted['vertices'])} of "
               f"{len(doc['vertices'])} vertices -> {path}")


@cli.command()
@click.argument('input_path', type=click.Path(exists=True))
@click.option('--output', '-o', default='pruned.json', help='Output CityJSON file path')
def prune(input_path: str, output: str):
    """Drop unreferenced vertices from a merged CityJSON file."""
    doc = _load_json(input_path)
    try:
        pruned = prune_unreferenced_vertices(doc)
    except CityTilesError as e:
        raise click.ClickException(str(e))
    path = write_document(pruned, output)
    click.echo(f"Kept {len(pruned['vertices'])} of {len(doc['vertices'])} vertices -> {path}")


@cli.command()
@click.argument('x', type=float)
@click.argument('y', type=float)
@click.option('--transform', 'transform_file', type=click.Path(exists=True),
              help='CityJSON file whose transform turns X Y from integer vertex space into metres')
def convert(x: float, y: float, transform_file: str):
    """Convert an RD New point X Y to latitude/longitude."""
    if transform_file:
        transform = Transform.from_json(_load_json(transform_file).get("transform"))
        if transform is not None:
            x, y, _ = transform.apply((x, y, 0))
    asyncio.run(async_convert(x, y))


async def async_build(builder: CityModelBuilder, lat: float, lon: float,
                      output: str, half_width: float, prune: bool):
    """Async helper function for building merged city models."""
    try:
        def _progress(pct, msg):
            click.echo(f"[{pct:3.0f}%] {msg}")

        path = await builder.build(lat, lon, output, half_width=half_width,
                                   prune=prune, progress_callback=_progress)
        stats = builder.last_stats
        if stats is not None:
            click.echo(f"{stats.city_objects} CityObjects, {stats.vertices} vertices, "
                       f"{stats.duplicates_skipped} duplicates skipped")
        logger.info(f"Successfully generated city model: {path}")
    except Exception as e:
        logger.error(f"Error building city model: {e}")
        raise click.ClickException(str(e))


async def async_convert(x: float, y: float):
    """Async helper for the convert command."""
    try:
        lat, lon = await get_geodetic_transform().planar_to_lat_long(x, y)
    except CityTilesError as e:
        raise click.ClickException(str(e))
    click.echo(f"{lat:.8f}, {lon:.8f}")


if __name__ == '__main__':
    cli()
