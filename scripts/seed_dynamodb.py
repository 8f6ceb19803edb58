"""Create the Newsreel DynamoDB tables and asset bucket, optionally with sample articles.

Usage:
    python scripts/seed_dynamodb.py --endpoint-url http://localhost:4566
    python scripts/seed_dynamodb.py --endpoint-url http://localhost:4566 --sample-articles
"""

from __future__ import annotations

import argparse
from datetime import datetime, timezone
from typing import Any

import boto3

from newsreel.models.content import Article, ArticleStatus
from newsreel.persistence.dynamodb_backend import CONTENT_TABLE, RUNS_TABLE, DynamoDBContentStore

TABLE_DEFINITIONS: list[dict[str, Any]] = [
    {"name": RUNS_TABLE},
    {"name": CONTENT_TABLE},
]

SAMPLE_ARTICLES = [
    {"pick_id": "6101234", "title": "Typhoon approaches western Japan", "source": "Sample News"},
    {"pick_id": "6105678", "title": "Bank of Japan holds rates steady", "source": "Sample Economy"},
]


def create_tables(ddb: Any, suffix: str = "") -> None:
    """Create both tables. Skips tables that already exist."""
    client = ddb.meta.client
    existing = client.list_tables().get("TableNames", [])

    for defn in TABLE_DEFINITIONS:
        table_name = f"{defn['name']}{suffix}"
        if table_name in existing:
            print(f"  Table {table_name} already exists, skipping")
            continue
        client.create_table(
            TableName=table_name,
            KeySchema=[
                {"AttributeName": "PK", "KeyType": "HASH"},
                {"AttributeName": "SK", "KeyType": "RANGE"},
            ],
            AttributeDefinitions=[
                {"AttributeName": "PK", "AttributeType": "S"},
                {"AttributeName": "SK", "AttributeType": "S"},
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        print(f"  Created table {table_name}")


def create_bucket(s3: Any, bucket: str) -> None:
    existing = {b["Name"] for b in s3.list_buckets().get("Buckets", [])}
    if bucket in existing:
        print(f"  Bucket {bucket} already exists, skipping")
        return
    s3.create_bucket(Bucket=bucket)
    print(f"  Created bucket {bucket}")


def seed_sample_articles(store: DynamoDBContentStore) -> int:
    """Insert fully scraped articles so video selection has input in development."""
    now = datetime.now(timezone.utc)
    inserted = 0
    for sample in SAMPLE_ARTICLES:
        article = Article(
            status=ArticleStatus.SCRAPED_V2,
            url=f"https://news.yahoo.co.jp/pickup/{sample['pick_id']}",
            content=f"{sample['title']}. Sample article body.",
            detected_at=now,
            first_scraped_at=now,
            second_scraped_at=now,
            **sample,
        )
        if store.insert_article_if_absent(article):
            inserted += 1
    print(f"  Seeded {inserted} sample article(s)")
    return inserted


def main() -> None:
    parser = argparse.ArgumentParser(description="Create Newsreel tables and bucket")
    parser.add_argument("--endpoint-url", default=None, help="AWS endpoint (e.g. http://localhost:4566)")
    parser.add_argument("--table-suffix", default="", help="Table name suffix (e.g. -dev)")
    parser.add_argument("--region", default="us-east-1", help="AWS region")
    parser.add_argument("--bucket", default="newsreel-assets", help="Asset bucket name")
    parser.add_argument("--sample-articles", action="store_true", help="Insert sample scraped articles")
    args = parser.parse_args()

    kwargs: dict[str, Any] = {"region_name": args.region}
    if args.endpoint_url:
        kwargs["endpoint_url"] = args.endpoint_url

    ddb = boto3.resource("dynamodb", **kwargs)

    print("Creating tables...")
    create_tables(ddb, suffix=args.table_suffix)

    print("Creating bucket...")
    create_bucket(boto3.client("s3", **kwargs), args.bucket)

    if args.sample_articles:
        print("Seeding data...")
        store = DynamoDBContentStore(
            table_suffix=args.table_suffix, region=args.region, endpoint_url=args.endpoint_url,
        )
        seed_sample_articles(store)

    print("Done!")


if __name__ == "__main__":
    main()
