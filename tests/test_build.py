import io
import uuid
import xml.etree.ElementTree as ET
import zipfile
from datetime import datetime, timezone

import pytest

from epub_gen import (
    BookInfo,
    Chapter,
    EmptyPackage,
    IdentifierAllocator,
    MalformedFragment,
    archive_bytes,
    assemble,
    build_epub,
    font_from_bytes,
)

OPF = '{http://www.idpf.org/2007/opf}'
XHTML = '{http://www.w3.org/1999/xhtml}'
FIXED = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def _chapters(n):
    return [Chapter(f'Chapter {i}', f'<p>Body {i}</p>') for i in range(1, n + 1)]


def test_single_chapter_scenario():
    info = BookInfo(title='A Nice Title', language='en', version=3)
    pkg = assemble(info, [Chapter('Title', 'A some content...')])
    docs = [e for e in pkg.entries if e.path.startswith('OEBPS/chapter-')]
    assert len(docs) == 1
    assert b'A some content...' in docs[0].data
    assert [(n.title, n.href) for n in pkg.nav] == [('Title', 'chapter-0001.xhtml')]
    assert [(s.idref, s.linear) for s in pkg.spine] == [('chapter-0001', True)]

    nav = ET.fromstring(pkg.entry('OEBPS/nav.xhtml').data)
    links = [(a.text, a.get('href')) for a in nav.iter(f'{XHTML}a')]
    assert links == [('Title', 'chapter-0001.xhtml')]


def test_identical_titles_get_distinct_ids_and_paths():
    pkg = assemble(BookInfo(title='T'), [Chapter('Intro', '<p>a</p>'), Chapter('Intro', '<p>b</p>')])
    chapters = [i for i in pkg.manifest if i.id.startswith('chapter-')]
    assert len({i.id for i in chapters}) == 2
    assert len({i.href for i in chapters}) == 2


def test_spine_and_nav_follow_chapter_order():
    chapters = [Chapter(t, f'<p>{t} #{i}</p>') for i, t in enumerate(['Zeta', 'Alpha', 'Mid', 'Alpha', 'End'])]
    pkg = assemble(BookInfo(title='T'), chapters)
    by_id = {i.id: i for i in pkg.manifest}
    assert [n.title for n in pkg.nav] == ['Zeta', 'Alpha', 'Mid', 'Alpha', 'End']
    assert [s.idref for s in pkg.spine] == [n.idref for n in pkg.nav]
    for s, ch in zip(pkg.spine, chapters):
        assert ch.body.encode() in pkg.entry('OEBPS/' + by_id[s.idref].href).data


def test_references_are_closed():
    info = BookInfo(title='T', css='p { margin: 0 }', include_ncx=True)
    pkg = assemble(info, _chapters(4), fonts=[font_from_bytes('Amiri-Regular.ttf', b'\x00\x01\x00\x00')])
    ids = [i.id for i in pkg.manifest]
    assert len(ids) == len(set(ids))
    paths = {e.path for e in pkg.entries}
    assert all('OEBPS/' + i.href in paths for i in pkg.manifest)
    opf = ET.fromstring(pkg.entry('OEBPS/package.opf').data)
    manifest_ids = {i.get('id') for i in opf.iter(f'{OPF}item')}
    assert {r.get('idref') for r in opf.iter(f'{OPF}itemref')} <= manifest_ids
    assert opf.find(f'{OPF}spine').get('toc') == 'ncx'


def test_stylesheet_and_fonts_are_packaged():
    font = font_from_bytes('Amiri-Bold.ttf', b'\x00\x01\x00\x00')
    info = BookInfo(title='T', css='p { margin: 0 }', fonts=('Georgia',))
    pkg = assemble(info, _chapters(1), fonts=[font])
    css = pkg.entry('OEBPS/styles/main.css').data.decode()
    assert "font-family: 'Amiri'" in css and "url('../fonts/Amiri-Bold.ttf')" in css
    assert 'font-weight: 700' in css
    assert "'Georgia', 'Amiri', serif" in css
    assert css.endswith('p { margin: 0 }\n')
    assert pkg.entry('OEBPS/fonts/Amiri-Bold.ttf').data == font.data
    assert b'href="styles/main.css"' in pkg.entry('OEBPS/chapter-0001.xhtml').data
    assert [p for p in (e.path for e in pkg.entries)][-2:] == ['OEBPS/styles/main.css', 'OEBPS/fonts/Amiri-Bold.ttf']


def test_no_stylesheet_without_css_or_fonts():
    pkg = assemble(BookInfo(title='T'), _chapters(1))
    assert not any(e.path.endswith('.css') for e in pkg.entries)
    assert b'<link' not in pkg.entry('OEBPS/chapter-0001.xhtml').data


def test_epub2_package():
    pkg = assemble(BookInfo(title='T', version=2), _chapters(2))
    paths = [e.path for e in pkg.entries]
    assert 'OEBPS/toc.ncx' in paths and 'OEBPS/nav.xhtml' not in paths
    opf = ET.fromstring(pkg.entry('OEBPS/package.opf').data)
    assert opf.get('version') == '2.0'


def test_nav_in_spine_variant():
    pkg = assemble(BookInfo(title='T', nav_in_spine=True), _chapters(2))
    assert [s.idref for s in pkg.spine] == ['nav', 'chapter-0001', 'chapter-0002']


def test_reruns_differ_only_in_book_identifier():
    def run(n):
        ids = IdentifierAllocator(uuid_fn=lambda: uuid.UUID(int=n))
        return archive_bytes(assemble(BookInfo(title='T'), _chapters(3), allocator=ids, modified=FIXED).entries)

    assert run(1) == run(1)
    assert run(1) != run(2)

    a = assemble(BookInfo(title='T'), _chapters(1))
    b = assemble(BookInfo(title='T'), _chapters(1))
    assert a.book_id != b.book_id
    assert [i.id for i in a.manifest] == [i.id for i in b.manifest]


def test_build_epub_writes_readable_archive(tmp_path):
    out = tmp_path / 'book.epub'
    assert build_epub(BookInfo(title='T'), _chapters(2), str(out)) == str(out)
    with zipfile.ZipFile(out) as zf:
        assert zf.namelist()[:3] == ['mimetype', 'META-INF/container.xml', 'OEBPS/package.opf']
        assert zf.read('mimetype') == b'application/epub+zip'
        assert zf.testzip() is None


def test_empty_book_writes_nothing(tmp_path):
    out = tmp_path / 'book.epub'
    with pytest.raises(EmptyPackage):
        build_epub(BookInfo(title='T'), [], str(out))
    assert not out.exists()
    out.write_bytes(b'keep')
    with pytest.raises(EmptyPackage):
        build_epub(BookInfo(title='T'), [], str(out))
    assert out.read_bytes() == b'keep'


def test_malformed_chapter_aborts_build(tmp_path):
    out = tmp_path / 'book.epub'
    chapters = [Chapter('Good', '<p>ok</p>'), Chapter('Bad', '<p>broken')]
    with pytest.raises(MalformedFragment) as e:
        build_epub(BookInfo(title='T'), chapters, str(out))
    assert e.value.chapter_index == 2 and e.value.title == 'Bad'
    assert not out.exists()


def test_progress_events_and_broken_callback(tmp_path):
    events = []
    build_epub(BookInfo(title='T'), _chapters(2), str(tmp_path / 'a.epub'), on_event=events.append)
    assert [e['type'] for e in events] == ['chapter_rendered', 'chapter_rendered', 'package_assembled', 'archive_written']
    assert [e.get('id') for e in events[:2]] == ['chapter-0001', 'chapter-0002']

    def boom(ev):
        raise RuntimeError('callback bug')

    build_epub(BookInfo(title='T'), _chapters(1), str(tmp_path / 'b.epub'), on_event=boom)
    assert (tmp_path / 'b.epub').exists()


def test_from_paragraphs_escapes_text():
    ch = Chapter.from_paragraphs('T', ['a < b', 'c & d'])
    assert ch.body == '<p>a &lt; b</p>\n<p>c &amp; d</p>'
    pkg = assemble(BookInfo(title='T'), [ch])
    assert b'<p>a &lt; b</p>' in pkg.entry('OEBPS/chapter-0001.xhtml').data


def test_untitled_chapter_keeps_its_own_heading_once():
    pkg = assemble(BookInfo(title='T'), [Chapter('', '<h1>Prologue</h1><p>x</p>')])
    data = pkg.entry('OEBPS/chapter-0001.xhtml').data
    assert data.count(b'Prologue</h1>') == 1
    assert b'<title>Prologue</title>' in data
    assert [n.title for n in pkg.nav] == ['Prologue']


def test_fonts_with_the_same_file_name_are_both_packaged():
    fonts = [font_from_bytes('a/Amiri-Regular.ttf', b'one'), font_from_bytes('b/Amiri-Regular.ttf', b'two')]
    pkg = assemble(BookInfo(title='T'), _chapters(1), fonts=fonts)
    assert pkg.entry('OEBPS/fonts/Amiri-Regular.ttf').data == b'one'
    assert pkg.entry('OEBPS/fonts/Amiri-Regular-2.ttf').data == b'two'
    css = pkg.entry('OEBPS/styles/main.css').data.decode()
    assert "url('../fonts/Amiri-Regular.ttf')" in css
    assert "url('../fonts/Amiri-Regular-2.ttf')" in css


def test_epub2_rejects_epub_namespace_markup():
    with pytest.raises(MalformedFragment):
        assemble(BookInfo(title='T', version=2), [Chapter('A', '<p epub:type="note">x</p>')])
    pkg = assemble(BookInfo(title='T', version=3), [Chapter('A', '<p epub:type="note">x</p>')])
    assert b'epub:type="note"' in pkg.entry('OEBPS/chapter-0001.xhtml').data
