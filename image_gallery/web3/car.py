from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple
import base64
import hashlib
from dataclasses import dataclass, field

"""Pack files into a UnixFS directory and serialize it as CAR files.

web3.storage accepts uploads as CARv1 archives. Building the DAG locally
means the root CID is known before a single byte leaves the process.
Layout matches what the JavaScript client produces: CIDv1, sha2-256,
1 MiB raw leaves and balanced file trees of up to 1024 children.
"""

RAW = 0x55
DAG_PB = 0x70
SHA2_256 = 0x12

CHUNK_SIZE = 1024 * 1024
MAX_CHILDREN = 1024

# UnixFS Data.DataType
DIRECTORY = 1
FILE = 2


def _varint(n: int) -> bytes:
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def _read_varint(data: bytes, offset: int) -> Tuple[int, int]:
    value = 0
    shift = 0
    while True:
        if offset >= len(data):
            raise ValueError("truncated_varint")
        byte = data[offset]
        offset += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, offset
        shift += 7


@dataclass(frozen=True)
class CID:
    codec: int
    digest: bytes

    @classmethod
    def of(cls, codec: int, data: bytes) -> "CID":
        return cls(codec, hashlib.sha256(data).digest())

    @classmethod
    def decode(cls, data: bytes, offset: int = 0) -> Tuple["CID", int]:
        """Read a binary CIDv1 starting at `offset`; return it and the end offset."""
        version, offset = _read_varint(data, offset)
        if version != 1:
            raise ValueError("unsupported_cid_version")
        codec, offset = _read_varint(data, offset)
        code, offset = _read_varint(data, offset)
        if code != SHA2_256:
            raise ValueError("unsupported_multihash")
        length, offset = _read_varint(data, offset)
        digest = bytes(data[offset:offset + length])
        if len(digest) != length:
            raise ValueError("truncated_cid")
        return cls(codec, digest), offset + length

    @classmethod
    def parse(cls, text: str) -> "CID":
        if not text.startswith("b"):
            raise ValueError("unsupported_multibase")
        body = text[1:].upper()
        body += "=" * (-len(body) % 8)
        cid, _ = cls.decode(base64.b32decode(body))
        return cid

    def to_bytes(self) -> bytes:
        return (
            _varint(1)
            + _varint(self.codec)
            + _varint(SHA2_256)
            + _varint(len(self.digest))
            + self.digest
        )

    def __str__(self) -> str:
        return "b" + base64.b32encode(self.to_bytes()).decode("ascii").lower().rstrip("=")


class PBLink(NamedTuple):
    cid: CID
    name: str
    tsize: int


@dataclass
class PackedDirectory:
    root: CID
    # insertion ordered, leaves before their parents
    blocks: Dict[CID, bytes] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return sum(len(b) for b in self.blocks.values())


def _bytes_field(number: int, value: bytes) -> bytes:
    return _varint(number << 3 | 2) + _varint(len(value)) + value


def _varint_field(number: int, value: int) -> bytes:
    return _varint(number << 3) + _varint(value)


def _unixfs(data_type: int, filesize: Optional[int] = None, blocksizes: Iterable[int] = ()) -> bytes:
    out = _varint_field(1, data_type)
    if filesize is not None:
        out += _varint_field(3, filesize)
    for size in blocksizes:
        out += _varint_field(4, size)
    return out


def _pb_node(links: Iterable[PBLink], data: bytes) -> bytes:
    # dag-pb canonical form writes Links (field 2) before Data (field 1)
    out = b""
    for link in links:
        body = (
            _bytes_field(1, link.cid.to_bytes())
            + _bytes_field(2, link.name.encode("utf-8"))
            + _varint_field(3, link.tsize)
        )
        out += _bytes_field(2, body)
    return out + _bytes_field(1, data)


def _decode_link(payload: bytes) -> PBLink:
    cid = None
    name = ""
    tsize = 0
    offset = 0
    while offset < len(payload):
        key, offset = _read_varint(payload, offset)
        number, wire = key >> 3, key & 7
        if wire == 0:
            value, offset = _read_varint(payload, offset)
            if number == 3:
                tsize = value
        elif wire == 2:
            length, offset = _read_varint(payload, offset)
            chunk = payload[offset:offset + length]
            offset += length
            if number == 1:
                cid, _ = CID.decode(chunk)
            elif number == 2:
                name = chunk.decode("utf-8")
        else:
            raise ValueError("invalid_dag_pb")
    if cid is None:
        raise ValueError("invalid_dag_pb")
    return PBLink(cid, name, tsize)


def decode_pb_node(data: bytes) -> Tuple[bytes, List[PBLink]]:
    """Split a dag-pb block into its Data payload and its links."""
    node_data = b""
    links: List[PBLink] = []
    offset = 0
    while offset < len(data):
        key, offset = _read_varint(data, offset)
        number, wire = key >> 3, key & 7
        if wire != 2:
            raise ValueError("invalid_dag_pb")
        length, offset = _read_varint(data, offset)
        payload = data[offset:offset + length]
        offset += length
        if number == 1:
            node_data = payload
        elif number == 2:
            links.append(_decode_link(payload))
        else:
            raise ValueError("invalid_dag_pb")
    return node_data, links


def _pack_file(data: bytes, blocks: Dict[CID, bytes]) -> Tuple[CID, int]:
    """Add the blocks of one file; return its CID and cumulative DAG size."""
    chunks = [data[i:i + CHUNK_SIZE] for i in range(0, len(data), CHUNK_SIZE)] or [b""]

    # (cid, cumulative dag size, file bytes covered)
    nodes: List[Tuple[CID, int, int]] = []
    for chunk in chunks:
        cid = CID.of(RAW, chunk)
        blocks[cid] = chunk
        nodes.append((cid, len(chunk), len(chunk)))

    while len(nodes) > 1:
        parents = []
        for i in range(0, len(nodes), MAX_CHILDREN):
            group = nodes[i:i + MAX_CHILDREN]
            filesize = sum(n[2] for n in group)
            block = _pb_node(
                [PBLink(cid, "", tsize) for cid, tsize, _ in group],
                _unixfs(FILE, filesize, [n[2] for n in group]),
            )
            cid = CID.of(DAG_PB, block)
            blocks[cid] = block
            parents.append((cid, len(block) + sum(n[1] for n in group), filesize))
        nodes = parents

    cid, tsize, _ = nodes[0]
    return cid, tsize


def pack_directory(files: Iterable[Tuple[str, bytes]]) -> PackedDirectory:
    """Wrap (name, bytes) pairs in a single UnixFS directory."""
    blocks: Dict[CID, bytes] = {}
    entries: Dict[str, Tuple[CID, int]] = {}
    for name, data in files:
        if not name or "/" in name:
            raise ValueError("invalid_filename")
        if name in entries:
            raise ValueError("duplicate_filename")
        entries[name] = _pack_file(data, blocks)

    links = [
        PBLink(cid, name, tsize)
        for name, (cid, tsize) in sorted(entries.items(), key=lambda e: e[0].encode("utf-8"))
    ]
    block = _pb_node(links, _unixfs(DIRECTORY))
    root = CID.of(DAG_PB, block)
    blocks[root] = block
    return PackedDirectory(root=root, blocks=blocks)


def list_directory(blocks: Dict[CID, bytes], cid: CID) -> Dict[str, CID]:
    _, links = decode_pb_node(blocks[cid])
    return {link.name: link.cid for link in links}


def read_file(blocks: Dict[CID, bytes], cid: CID) -> bytes:
    """Reassemble file bytes from a raw leaf or a dag-pb file tree."""
    block = blocks[cid]
    if cid.codec == RAW:
        return block
    _, links = decode_pb_node(block)
    return b"".join(read_file(blocks, link.cid) for link in links)


def _cbor_bytes_head(length: int) -> bytes:
    if length < 24:
        return bytes([0x40 + length])
    if length < 256:
        return bytes([0x58, length])
    return bytes([0x59]) + length.to_bytes(2, "big")


def _car_header(root: CID) -> bytes:
    # dag-cbor {"roots": [CID], "version": 1}; CIDs are tag 42 over 0x00 + binary CID
    cid = b"\x00" + root.to_bytes()
    return (
        b"\xa2"
        + b"\x65roots" + b"\x81" + b"\xd8\x2a" + _cbor_bytes_head(len(cid)) + cid
        + b"\x67version" + b"\x01"
    )


def _car_section(cid: CID, data: bytes) -> bytes:
    cid_bytes = cid.to_bytes()
    return _varint(len(cid_bytes) + len(data)) + cid_bytes + data


def encode_car(root: CID, blocks: Iterable[Tuple[CID, bytes]]) -> bytes:
    header = _car_header(root)
    out = bytearray(_varint(len(header)) + header)
    for cid, data in blocks:
        out += _car_section(cid, data)
    return bytes(out)


def split_car(packed: PackedDirectory, max_chunk_size: int) -> List[bytes]:
    """Split a packed directory into CAR files of at most `max_chunk_size` bytes.

    Every chunk declares the same root. The root block travels in the first
    chunk. A single block larger than the limit gets a chunk of its own.
    """
    ordered = [(packed.root, packed.blocks[packed.root])]
    ordered += [(cid, data) for cid, data in packed.blocks.items() if cid != packed.root]

    header_size = len(encode_car(packed.root, []))
    chunks: List[bytes] = []
    current: List[Tuple[CID, bytes]] = []
    size = header_size
    for cid, data in ordered:
        entry = len(_car_section(cid, data))
        if current and size + entry > max_chunk_size:
            chunks.append(encode_car(packed.root, current))
            current = []
            size = header_size
        current.append((cid, data))
        size += entry
    if current:
        chunks.append(encode_car(packed.root, current))
    return chunks


def _decode_roots(header: bytes) -> List[CID]:
    roots: List[CID] = []
    marker = b"\xd8\x2a"
    pos = header.find(marker)
    while pos != -1:
        head = header[pos + 2]
        pos += 3
        if head == 0x58:
            length = header[pos]
            pos += 1
        elif head == 0x59:
            length = int.from_bytes(header[pos:pos + 2], "big")
            pos += 2
        else:
            length = head - 0x40
        # skip the 0x00 identity multibase prefix
        cid, _ = CID.decode(header[pos + 1:pos + length])
        roots.append(cid)
        pos = header.find(marker, pos + length)
    return roots


def read_car(data: bytes) -> Tuple[List[CID], Dict[CID, bytes]]:
    """Parse a CARv1 archive into its roots and a CID -> block mapping."""
    length, offset = _read_varint(data, 0)
    roots = _decode_roots(data[offset:offset + length])
    offset += length
    blocks: Dict[CID, bytes] = {}
    while offset < len(data):
        length, offset = _read_varint(data, offset)
        end = offset + length
        cid, start = CID.decode(data, offset)
        blocks[cid] = bytes(data[start:end])
        offset = end
    return roots, blocks
