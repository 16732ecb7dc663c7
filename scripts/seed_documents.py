"""Seed the system with sample campus documents for development.

Creates the passage index when missing, embeds and indexes each passage, and
registers the document metadata used for access and metadata filtering.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from elasticsearch import AsyncElasticsearch
from elasticsearch.helpers import async_bulk

from campus_rag.config.settings import Settings
from campus_rag.embeddings.openai_embedder import OpenAIEmbedder
from campus_rag.models.domain import DocumentRecord
from campus_rag.storage.sqlite_document_store import SQLiteDocumentStore

SAMPLE_DOCS = [
    {
        "record": DocumentRecord(
            document_id="scholarship-2024",
            source_name="2024年本科生奖学金评定办法",
            visibility="PUBLIC",
            department="学生工作处",
            doc_type="评奖评优",
            policy_year="2024",
            tags="奖学金;评奖",
        ),
        "passages": [
            "国家奖学金每学年评审一次，申请者须在上一学年综合测评成绩排名位于专业前10%，且无不及格课程。",
            "校级一等奖学金按专业人数的5%评定，奖励金额为每人每年4000元；二等奖学金按10%评定。",
            "受到纪律处分且在处分期内的学生，不得参加当年度各类奖学金评定。",
        ],
    },
    {
        "record": DocumentRecord(
            document_id="challenge-cup-2024",
            source_name="挑战杯竞赛奖励实施细则",
            visibility="PUBLIC",
            department="团委",
            doc_type="竞赛奖励",
            policy_year="2024",
            tags="挑战杯,竞赛",
        ),
        "passages": [
            "获得挑战杯全国特等奖的团队，每位成员在综合测评中加5分，国家级一等奖加4分。",
            "同一项目在同一学年内获得多项竞赛奖励的，按最高等级计分，不重复累计。",
        ],
    },
    {
        "record": DocumentRecord(
            document_id="leave-policy",
            source_name="学生请假管理规定",
            visibility="PUBLIC",
            department="学生工作处",
            doc_type="请假审批",
            tags="请假",
        ),
        "passages": [
            "学生请假三天以内由辅导员审批；三天以上一周以内由学院分管副书记审批。",
            "病假须提供校医院或二级以上医院出具的诊断证明，事后补假须在返校后三日内办理。",
        ],
    },
    {
        "record": DocumentRecord(
            document_id="cs-transfer-notes",
            source_name="计算机学院转专业面试笔记",
            owner_id="student-001",
            visibility="PRIVATE",
            department="计算机学院",
            doc_type="转专业",
            policy_year="2023",
        ),
        "passages": [
            "计算机学院转专业考核包含程序设计笔试和综合面试，笔试占60%，面试占40%。",
        ],
    },
]


def index_mapping(dimensions: int) -> dict:
    return {
        "properties": {
            "document_id": {"type": "keyword"},
            "chunk_index": {"type": "integer"},
            "text": {"type": "text"},
            "vector": {
                "type": "dense_vector",
                "dims": dimensions,
                "index": True,
                "similarity": "cosine",
            },
        }
    }


async def main() -> None:
    settings = Settings()

    Path(settings.sqlite_db_path).parent.mkdir(parents=True, exist_ok=True)
    doc_store = SQLiteDocumentStore(settings.sqlite_db_path)
    await doc_store.initialize()

    embedder = OpenAIEmbedder(
        api_key=settings.openai_api_key,
        model=settings.embedding_model,
        batch_size=settings.embedding_batch_size,
        dimensions=settings.embedding_dimensions,
    )
    client = AsyncElasticsearch(
        settings.elasticsearch_url,
        api_key=settings.elasticsearch_api_key or None,
        request_timeout=settings.elasticsearch_timeout_s,
    )

    try:
        if not await client.indices.exists(index=settings.elasticsearch_index):
            await client.indices.create(
                index=settings.elasticsearch_index,
                mappings=index_mapping(settings.embedding_dimensions),
            )
            print(f"Created index {settings.elasticsearch_index}")

        for doc in SAMPLE_DOCS:
            record: DocumentRecord = doc["record"]
            vectors = await embedder.encode(doc["passages"])
            actions = [
                {
                    "_index": settings.elasticsearch_index,
                    "_id": f"{record.document_id}:{i}",
                    "_source": {
                        "document_id": record.document_id,
                        "chunk_index": i,
                        "text": text,
                        "vector": vector,
                    },
                }
                for i, (text, vector) in enumerate(zip(doc["passages"], vectors))
            ]
            indexed, _ = await async_bulk(client, actions, refresh=True)
            await doc_store.upsert_document(record)
            print(f"Seeded {record.source_name}: {indexed} passages")

        print(f"\nTotal documents: {await doc_store.count()}")
    finally:
        await client.close()
        await embedder.close()


if __name__ == "__main__":
    asyncio.run(main())
