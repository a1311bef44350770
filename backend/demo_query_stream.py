"""Demo: ask the running API a question and print the streamed, cited answer."""
import sys
import argparse
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent))

import httpx

from services.stream_protocol import StreamDecoder


def main(argv=None):
    parser = argparse.ArgumentParser(description="Stream an answer from the query API")
    parser.add_argument("question")
    parser.add_argument("--url", default="http://localhost:8000/api/query")
    args = parser.parse_args(argv)

    decoder = StreamDecoder()
    citations_printed = False

    with httpx.stream("POST", args.url, json={"query": args.question}, timeout=None) as response:
        if response.status_code != 200:
            response.read()
            print(f"Request failed ({response.status_code}): {response.text}")
            sys.exit(1)

        for chunk in response.iter_bytes():
            text = decoder.feed(chunk)
            if decoder.citations is not None and not citations_printed:
                citations_printed = True
                print("Sources:")
                for citation in decoder.citations:
                    print(f"  [{citation.id}] {citation.source} (score {citation.score:.2f})")
                print()
            if text:
                print(text, end="", flush=True)

    print(decoder.close())
    if decoder.truncated:
        print("\n(stream ended before the answer started)")


if __name__ == "__main__":
    main()
