"""Train a rankbpe tokenizer on a Hugging Face text dataset and report throughput."""

import argparse
import logging
import time
from pathlib import Path

from datasets import load_dataset

from rankbpe import Tokenizer

HF_DATASET = "stevez80/Sci-Fi-Books-gutenberg"
SPECIAL_TOKENS = ["<|endoftext|>"]

# Configure logging to show INFO level and above.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%H:%M:%S",
)
log = logging.getLogger("train")


def format_bytes(num_bytes: float) -> str:
    """Format bytes to human-readable string."""
    for unit in ["B", "KB", "MB", "GB"]:
        if num_bytes < 1024.0:
            return f"{num_bytes:.2f} {unit}"
        num_bytes /= 1024.0
    return f"{num_bytes:.2f} TB"


def load_corpus(num_docs: int | None) -> list[str]:
    """Load up to `num_docs` documents; the full split when None."""
    log.info(f"loading {HF_DATASET}")
    ds = load_dataset(HF_DATASET, split="train")
    if num_docs is not None:
        return ds[:num_docs]["text"]
    return ds["text"]


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Train a byte-level BPE tokenizer and benchmark encode/decode."
    )
    parser.add_argument(
        "--num-docs",
        type=int,
        default=1000,
        help="Number of documents to train on (default: 1000).",
    )
    parser.add_argument(
        "--vocab-size",
        type=int,
        default=10_000,
        help="Target vocabulary size including the 256 byte tokens (default: 10,000).",
    )
    parser.add_argument(
        "--out",
        type=str,
        default="encoding",
        help="Output prefix for the .model, .vocab and .tiktoken files.",
    )
    args = parser.parse_args()

    docs = load_corpus(args.num_docs)
    if not docs:
        raise RuntimeError("No documents loaded from dataset.")
    total_bytes = sum(len(doc.encode("utf-8")) for doc in docs)
    log.info(f"corpus: {len(docs):,} documents, {format_bytes(total_bytes)}")

    # documents train separately, so no merge spans two of them
    tokenizer = Tokenizer.train(
        docs, vocab_size=args.vocab_size, special_tokens=SPECIAL_TOKENS
    )
    log.info(f"trained {tokenizer!r}")

    t0 = time.perf_counter()
    encoded = tokenizer.encode_batch(docs)
    encode_secs = time.perf_counter() - t0

    t0 = time.perf_counter()
    decoded = tokenizer.decode_batch(encoded)
    decode_secs = time.perf_counter() - t0

    if decoded != docs:
        raise RuntimeError("decoded documents do not match the input")

    total_tokens = sum(len(seq) for seq in encoded)
    ratio = total_bytes / total_tokens
    log.info(
        f"encode: {total_bytes / encode_secs / (1024 * 1024):.2f} MB/sec, "
        f"decode: {total_tokens / decode_secs / 1_000_000:.2f}M tokens/sec"
    )
    log.info(
        f"compression: {ratio:.2f}x ({(1 - 1 / ratio) * 100:.1f}% size reduction)"
    )

    tokenizer.save(args.out)
    tokenizer.save_tiktoken(Path(args.out).with_suffix(".tiktoken"))


if __name__ == "__main__":
    main()
