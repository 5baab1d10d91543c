import os
import requests
import tarfile
import shutil
import contextlib
from ..cli_logger import logger
from ..errors import FetchError

# -------------------- Helpers: safe paths & extraction --------------------

def _safe_join(base, *paths):
    """Safely join paths, preventing path traversal attacks."""
    base = os.path.abspath(base)
    final = os.path.abspath(os.path.join(base, *paths))
    if not final.startswith(base + os.sep) and final != base:
        raise FetchError(f"Unsafe path detected in archive: {final}")
    return final

def _strip_components(name, count):
    parts = [part for part in name.split("/") if part not in ("", ".")]
    return "/".join(parts[count:])

def _safe_extract_tar(tar_ref: tarfile.TarFile, dest_dir: str, strip_components=0):
    """Extract a tar file member by member, dropping leading path components."""
    for member in tar_ref.getmembers():
        relative = _strip_components(member.name, strip_components)
        if not relative:
            continue
        member_path = _safe_join(dest_dir, relative)
        if member.isdir():
            os.makedirs(member_path, exist_ok=True)
            continue
        os.makedirs(os.path.dirname(member_path), exist_ok=True)
        if member.issym():
            _safe_join(os.path.dirname(member_path), member.linkname)
            with contextlib.suppress(FileNotFoundError):
                os.remove(member_path)
            os.symlink(member.linkname, member_path)
            continue
        src = tar_ref.extractfile(member)
        if src is None:
            # could be special file; skip silently
            continue
        with src as src_file:
            with open(member_path, "wb") as out:
                shutil.copyfileobj(src_file, out)
        if member.mode:
            os.chmod(member_path, member.mode)


def extract(filepath, dest_dir, strip_components=0):
    """Extracts a tar archive into ``dest_dir`` and removes the archive."""
    os.makedirs(dest_dir, exist_ok=True)
    try:
        with tarfile.open(filepath, 'r:*') as tar:
            _safe_extract_tar(tar, dest_dir, strip_components=strip_components)
    except (tarfile.TarError, OSError) as e:
        raise FetchError(f"Error extracting {os.path.basename(filepath)}: {e}") from e

    # Remove archive after successful extraction
    with contextlib.suppress(OSError):
        os.remove(filepath)

    logger.success(f"Successfully extracted to {dest_dir}")
    return dest_dir

# -------------------- Download & Extract --------------------

def download(url, filepath, timeout=60):
    """Download ``url`` to ``filepath`` through a temporary file."""
    os.makedirs(os.path.dirname(filepath), exist_ok=True)
    temp_filepath = filepath + ".tmp"
    filename = os.path.basename(filepath)

    try:
        with requests.get(url, stream=True, timeout=timeout) as r:
            r.raise_for_status()
            total_size = int(r.headers.get('content-length', 0))

            with open(temp_filepath, 'wb') as f:
                chunks = logger.progress(
                    r.iter_content(chunk_size=1024 * 256),  # 256KB chunks
                    description=f"Downloading {filename}",
                    total=total_size,
                )
                for chunk in chunks:
                    if chunk:  # keep-alive chunks may be empty
                        f.write(chunk)

        # Atomic rename
        os.replace(temp_filepath, filepath)
        return filepath

    except requests.exceptions.RequestException as e:
        with contextlib.suppress(OSError):
            if os.path.exists(temp_filepath):
                os.remove(temp_filepath)
        raise FetchError(f"Error downloading {url}: {e}") from e


def download_and_extract(url, dest_dir, filename=None, strip_components=0, timeout=60):
    """Download a tarball and extract it to a destination directory."""
    if filename is None:
        filename = url.split('/')[-1] or "download.tar.gz"
    filepath = os.path.join(os.path.dirname(os.path.abspath(dest_dir)), f".{os.path.basename(dest_dir)}-{filename}")

    download(url, filepath, timeout=timeout)
    logger.step_info(f"Archive:  {filename}", indent=4)
    return extract(filepath, dest_dir, strip_components=strip_components)


def copy_path(source, destination):
    """Recursively copy a file or directory, merging into existing directories."""
    if os.path.isdir(source):
        shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
    else:
        os.makedirs(os.path.dirname(destination) or ".", exist_ok=True)
        shutil.copy2(source, destination)
    return destination


def remove_path(path):
    """Remove a file, symlink or directory tree if it exists."""
    if os.path.islink(path) or os.path.isfile(path):
        os.remove(path)
    elif os.path.isdir(path):
        shutil.rmtree(path)
