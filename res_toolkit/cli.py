"""RES Toolkit CLI."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .errors import ResError
from .formats.address import AddressMode

STORE_CHOICES = {"package": AddressMode.PACKAGE, "data": AddressMode.DATA, "patch": AddressMode.PATCH}
EMBED_CHOICES = {"c": AddressMode.EMBEDDED_C, "d": AddressMode.EMBEDDED_D}


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
def main(verbose: bool):
    """RES Toolkit - Inspect, extract and repack RES archives.

    \b
    RES archives hold a fileset table whose entries point either into the
    archive itself (SET_C / SET_D) or into external stores next to it
    (package.rdp, data.rdp, patch.rdp).
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("archive", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--stores",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory holding the .rdp stores (default: next to the archive)",
)
def info(archive: Path, stores: Optional[Path]):
    """Show the header, groups and fileset entries of a RES archive."""
    from .archive import ResArchive

    try:
        res = ResArchive(archive, stores)
        for line in res.describe():
            click.echo(line)

    except (ResError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output directory (default: <archive_name> next to the archive)",
)
@click.option(
    "--stores",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory holding the .rdp stores (default: next to the archive)",
)
@click.option(
    "--list-only",
    is_flag=True,
    help="List files without extracting",
)
def extract(archive: Path, output: Optional[Path], stores: Optional[Path], list_only: bool):
    """Extract payloads from a RES archive.

    Payloads are decompressed (blz2 / blz4) and written under their
    stored directory names. An edit descriptor <archive_name>.json is
    written next to the archive; edit it and pass it to `repack`. Files
    read from external stores are listed per store in <store>Dict.json.
    """
    from .archive import ResArchive

    click.echo(f"Opening: {archive}")

    try:
        res = ResArchive(archive, stores)

        if list_only:
            names = res.list_files()
            click.echo(f"\nFiles in archive ({len(names)}):")
            for filename in names:
                click.echo(f"  {filename}")
            return

        if output is None:
            output = archive.parent / archive.stem

        click.echo(f"Output:  {output}")
        click.echo()

        with click.progressbar(
            list(res.extract_all(output)),
            label="Extracting",
            item_show_func=lambda x: x[1].name if x else "",
        ) as items:
            extracted_count = sum(1 for _ in items)

        json_path = archive.with_suffix(".json")
        res.edits.save(json_path)
        index_paths = res.save_store_index(archive.parent)

        click.echo()
        click.echo(f"Extracted: {extracted_count} files")
        click.echo(f"Descriptor: {json_path}")
        for path in index_paths:
            click.echo(f"Store index: {path}")

    except (ResError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("archive", type=click.Path(exists=True, path_type=Path))
@click.argument("descriptor", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output archive (default: <archive_name>_repacked.res)",
)
@click.option(
    "--stores",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Directory holding the .rdp stores (default: next to the archive)",
)
@click.option(
    "--enforce/--no-enforce",
    default=False,
    help="Pull every externally stored payload into the archive",
)
@click.option(
    "--embed-mode",
    type=click.Choice(sorted(EMBED_CHOICES)),
    help="Embedded mode for --enforce (default: the archive's majority)",
)
@click.option(
    "--to-store",
    type=click.Choice(sorted(STORE_CHOICES)),
    help="Push every embedded payload out to this store",
)
@click.option(
    "--suffix",
    default="_new",
    show_default=True,
    help="Suffix for updated store files",
)
def repack(
    archive: Path,
    descriptor: Path,
    output: Optional[Path],
    stores: Optional[Path],
    enforce: bool,
    embed_mode: Optional[str],
    to_store: Optional[str],
    suffix: str,
):
    """Repack a RES archive using an edited JSON descriptor.

    Replacement files named in DESCRIPTOR are read relative to its
    directory. Entries that cannot be updated are left unchanged and
    listed at the end.
    """
    from .archive import RelocationRule, RepackOptions, Repacker, ResArchive
    from .archive.repacker import preferred_embedded_mode
    from .formats import EditDescriptor

    if enforce and to_store:
        click.echo("Error: --enforce and --to-store cannot be combined", err=True)
        sys.exit(1)

    click.echo(f"Opening: {archive}")

    try:
        res = ResArchive(archive, stores)
        edits = EditDescriptor.load(descriptor)

        rules = []
        if enforce:
            if embed_mode:
                target = EMBED_CHOICES[embed_mode]
            else:
                target = preferred_embedded_mode(res.entries)
            click.echo(f"Enforce: all payloads -> {target.label}")
            rules.append(RelocationRule.enforce_embedded(target))
        elif to_store:
            target = STORE_CHOICES[to_store]
            click.echo(f"Relocate: embedded payloads -> {target.store_name}")
            rules.append(RelocationRule.to_store(target))

        if output is None:
            tag = "enforced" if enforce else "repacked"
            output = archive.with_name(f"{archive.stem}_{tag}{archive.suffix}")

        repacker = Repacker(
            res.descriptor,
            res.data,
            edits,
            session=res.session,
            options=RepackOptions(relocation_rules=rules),
            base_dir=descriptor.parent,
        )
        result = repacker.repack()

        output.write_bytes(result.data)
        click.echo(f"Created: {output}")
        for path in res.session.write_modified(suffix=suffix):
            click.echo(f"Updated: {path}")

        if result.relocated:
            click.echo(f"Relocated: {len(result.relocated)} entries")
        if result.skipped:
            click.echo()
            click.echo(f"Skipped: {len(result.skipped)} entries")
            for skip in result.skipped:
                click.echo(f"  {skip.reason}")

    except (ResError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("rtbl_file", type=click.Path(exists=True, path_type=Path))
def rtbl(rtbl_file: Path):
    """List the fileset entries of an RTBL table."""
    from .formats import RtblTable

    click.echo(f"Loading: {rtbl_file}")

    try:
        table = RtblTable.from_file(rtbl_file)

        click.echo(f"Entries: {len(table)}")
        click.echo()
        for entry in table:
            mode = entry.address_mode
            click.echo(f"0x{entry.position:08X}: [{mode.label}]")
            click.echo(f"  Raw Offset: 0x{entry.raw_offset:08X}")
            click.echo(f"  Real Offset: 0x{entry.real_offset:08X}")
            click.echo(f"  Size: {entry.size} bytes")
            click.echo(f"  Unpack Size: {entry.unpack_size} bytes")
            for j, name in enumerate(entry.name_strings):
                click.echo(f"  [{j}]: {name}")

    except (ResError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument("input_file", type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output file (default: <input>.blz2, or <input> without .blz2 when decompressing)",
)
@click.option(
    "--decompress",
    is_flag=True,
    help="Decompress instead of compress",
)
def blz2(input_file: Path, output: Optional[Path], decompress: bool):
    """Compress or decompress a file with the blz2 chunk codec."""
    from .compression import blz2 as codec

    try:
        data = input_file.read_bytes()

        if decompress:
            result, was_compressed = codec.decompress(data)
            if not was_compressed:
                click.echo("Input is not blz2 data, copied unchanged")
            if input_file.suffix == ".blz2":
                default_output = input_file.with_suffix("")
            else:
                default_output = input_file.with_name(f"{input_file.name}.bin")
        else:
            result = codec.compress(data)
            default_output = input_file.with_name(f"{input_file.name}.blz2")

        if output is None:
            output = default_output

        output.write_bytes(result)
        click.echo(f"Created: {output} ({len(data)} -> {len(result)} bytes)")

    except (ResError, OSError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
