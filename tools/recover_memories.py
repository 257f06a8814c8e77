# FILE: tools/recover_memories.py
"""
Rebuild index entries for images that lost their memory record
"""
import sys

from memory_tree.client import RemoteMemoryClient


def recover_memories(base_url="http://localhost:8000"):
    """Run a recovery pass against a running server"""
    client = RemoteMemoryClient(base_url)
    try:
        result = client.recover()
    finally:
        client.close()

    # Recovered records are appended after the existing ones
    for memory in result.memories[len(result.memories) - result.recovered:]:
        print(f"✓ {memory.id}: {memory.date} {memory.image_url}")

    print(f"\nRecovered {result.recovered} memories ({result.total} total)")
    return result


if __name__ == "__main__":
    recover_memories(*sys.argv[1:2])
