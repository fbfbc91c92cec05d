"""
Link classification and link-graph lookups

A link graph maps every document path to the vault paths its links resolve
to, with a link count per target (the shape editors expose as "resolved
links"). It is read-only for the whole pipeline.
"""
import logging
import re
from collections import defaultdict
from pathlib import PurePosixPath
from typing import Callable, Dict, Iterable, List, Mapping, Optional
from urllib.parse import unquote, urlparse

from .vault import DocumentStore, BinaryStore, join_path

logger = logging.getLogger(__name__)

LinkGraph = Mapping[str, Mapping[str, int]]
LinkMatcher = Callable[[LinkGraph, str], Optional[str]]

IMAGE_EXTS_LOWER = ["jpg", "jpeg", "png", "gif", "svg", "bmp", "tiff", "webp"]

URL_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.\-]+$")

# [text](target) and ![alt](target)
MD_LINK_RE = re.compile(r"!?\[[^\]]*\]\((<[^>]*>|[^()\s]*(?:\([^()]*\)[^()\s]*)*)(?:\s+[\"'(][^)]*)?\)")
# [[target]], ![[target|alias]], [[note#heading]]
WIKILINK_RE = re.compile(r"!?\[\[([^\]|#^]+)(?:[#^][^\]|]*)?(?:\|[^\]]*)?\]\]")


def is_url(link: str) -> bool:
    """True for syntactically valid absolute URLs other than data: URIs"""
    link = link.strip()
    if link.lower().startswith("data:"):
        return False
    try:
        parsed = urlparse(link)
    except ValueError:
        return False
    # Single letter schemes are Windows drive letters
    if not parsed.scheme or not URL_SCHEME.match(parsed.scheme):
        return False
    return bool(parsed.netloc or parsed.path or parsed.query)


def has_image_extension(path: str, image_exts: Iterable[str] = IMAGE_EXTS_LOWER) -> bool:
    lowered = path.lower()
    return any(lowered.endswith("." + ext) for ext in image_exts)


def is_local_image(path: str, image_exts: Iterable[str] = IMAGE_EXTS_LOWER) -> bool:
    if is_url(path):
        return False
    return has_image_extension(path, image_exts)


def normalize_link(link: str) -> str:
    """Strip relative prefixes so a link can be matched by containment"""
    link = link.strip().replace("\\", "/")
    while True:
        if link.startswith("./"):
            link = link[2:]
        elif link.startswith("../"):
            link = link[3:]
        elif link.startswith("/"):
            link = link[1:]
        else:
            return link


def get_link_full_path(link_graph: LinkGraph, link: str) -> Optional[str]:
    """
    Find the vault path a link points to.

    Matching is by base name plus containment: a target matches when its
    base name equals the link's base name and the link text is a substring of
    the target path. Two images sharing a base name can be confused, which is
    why the matcher is injectable wherever it is used.
    """
    wanted = normalize_link(link)
    if not wanted:
        return None
    base = PurePosixPath(wanted).name
    for targets in link_graph.values():
        for target in targets:
            if PurePosixPath(target).name == base and wanted in target:
                return target
    return None


def generate_markdown_link(target_path: str, use_wikilinks: bool = True) -> str:
    """Embed text an editor writes for a file: ![[name]] or ![](path)"""
    if use_wikilinks:
        return f"![[{PurePosixPath(target_path).name}]]"
    return f"![]({target_path.replace(' ', '%20')})"


def extract_link_targets(text: str) -> List[str]:
    """All raw link targets in a document, in order of appearance"""
    targets = []
    for match in MD_LINK_RE.finditer(text):
        raw = match.group(1).strip()
        if raw.startswith("<") and raw.endswith(">"):
            raw = raw[1:-1]
        if raw:
            targets.append(unquote(raw))
    for match in WIKILINK_RE.finditer(text):
        raw = match.group(1).strip()
        if raw:
            targets.append(raw)
    return targets


def resolve_link_target(
    target: str,
    document_path: str,
    files: set,
    by_name: Mapping[str, List[str]],
) -> Optional[str]:
    """Resolve a raw link the way an editor does: relative, absolute, then by name"""
    if is_url(target) or target.lower().startswith("data:"):
        return None

    document_dir = str(PurePosixPath(document_path).parent)
    candidates = [join_path(document_dir, target), join_path(".", normalize_link(target))]
    if not PurePosixPath(target).suffix:
        candidates += [c + ".md" for c in candidates]

    for candidate in candidates:
        if candidate in files:
            return candidate

    name = PurePosixPath(target).name
    matches = by_name.get(name) or by_name.get(name + ".md") or []
    if len(matches) == 1:
        return matches[0]
    return None


async def build_link_graph(documents: DocumentStore, files: BinaryStore) -> Dict[str, Dict[str, int]]:
    """
    Build a link graph by scanning every document.

    Only links that resolve to an existing vault file are recorded, matching
    what an editor's link cache holds.
    """
    all_files = await files.list_files()
    file_set = set(all_files)
    by_name: Dict[str, List[str]] = defaultdict(list)
    for path in all_files:
        by_name[PurePosixPath(path).name].append(path)

    graph: Dict[str, Dict[str, int]] = {}
    for document in await documents.list_documents():
        try:
            text = await documents.read_text(document)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping {document} while building link graph: {e}")
            continue

        resolved: Dict[str, int] = defaultdict(int)
        for target in extract_link_targets(text):
            full_path = resolve_link_target(target, document, file_set, by_name)
            if full_path:
                resolved[full_path] += 1
        graph[document] = dict(resolved)

    logger.info(f"Link graph built: {len(graph)} documents, "
                f"{sum(len(t) for t in graph.values())} resolved targets")
    return graph
