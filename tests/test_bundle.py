import zipfile

import pytest

from adtap.bundle import CreativeBundle, find_primary, load_bundle

INDEX = b'<html><head><meta name="ad.size" content="width=300,height=250"></head></html>'


def write_zip(path, files):
    with zipfile.ZipFile(path, "w") as archive:
        for name, data in files.items():
            archive.writestr(name, data)
    return path


@pytest.mark.parametrize(
    "paths, expected",
    [
        (["b/index.html", "index.html", "a.htm"], "index.html"),
        (["creative/INDEX.HTML", "ad.html"], "creative/INDEX.HTML"),
        (["x/y/ad.html", "x/banner.htm", "x/app.js"], "x/banner.htm"),
        (["app.js", "style.css"], None),
    ],
)
def test_find_primary(paths, expected):
    assert find_primary(paths) == expected


def test_load_zip_skips_archive_noise(tmp_path):
    source = write_zip(
        tmp_path / "spring_sale.zip",
        {
            "spring/index.html": INDEX,
            "spring/img/logo.png": b"png",
            "__MACOSX/spring/._index.html": b"junk",
            "spring/.DS_Store": b"junk",
        },
    )

    bundle = load_bundle(source)

    assert bundle.name == "spring_sale"
    assert bundle.primary_path == "spring/index.html"
    assert sorted(bundle.files) == ["spring/img/logo.png", "spring/index.html"]
    assert bundle.total_bytes == len(INDEX) + 3


def test_load_directory(tmp_path):
    root = tmp_path / "creative"
    (root / "js").mkdir(parents=True)
    (root / "index.html").write_bytes(INDEX)
    (root / "js" / "app.js").write_bytes(b"1;")
    (root / "Thumbs.db").write_bytes(b"junk")

    bundle = load_bundle(root)

    assert bundle.name == "creative"
    assert set(bundle.files) == {"index.html", "js/app.js"}


def test_missing_bundle(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_bundle(tmp_path / "nope.zip")


def test_bundle_without_html(tmp_path):
    source = write_zip(tmp_path / "broken.zip", {"app.js": b"1;"})
    with pytest.raises(ValueError, match="No HTML document"):
        load_bundle(source)


def test_ad_size_from_meta():
    size = CreativeBundle("x", {"index.html": INDEX}, "index.html").ad_size()
    assert (size.width, size.height, size.source) == (300, 250, "meta")


def test_ad_size_from_folder_name():
    size = CreativeBundle("campaign", {"728x90/index.html": b"<html></html>"}, "728x90/index.html").ad_size()
    assert (size.width, size.height, size.source) == (728, 90, "folder")


def test_ad_size_unknown():
    assert CreativeBundle("campaign", {"index.html": b""}, "index.html").ad_size() is None


def test_asset_table_serves_primary():
    bundle = CreativeBundle("x", {"index.html": INDEX}, "index.html")
    table = bundle.asset_table("https://h.invalid/t/")
    assert table.entries["index.html"] == "https://h.invalid/t/index.html"
    assert table.content("https://h.invalid/t/index.html") == INDEX
