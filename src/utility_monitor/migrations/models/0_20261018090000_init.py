from tortoise import BaseDBAsyncClient


async def upgrade(db: BaseDBAsyncClient) -> str:
    return """
        CREATE TABLE IF NOT EXISTS "statenode" (
    "id" UUID NOT NULL PRIMARY KEY,
    "created_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "path" VARCHAR(255) NOT NULL UNIQUE,
    "kind" VARCHAR(8) NOT NULL DEFAULT 'number',
    "name" VARCHAR(255) NOT NULL DEFAULT '',
    "unit" VARCHAR(16),
    "number" DECIMAL(20,6),
    "text" TEXT,
    "flag" BOOL
);
COMMENT ON COLUMN "statenode"."kind" IS 'CHANNEL: channel\nNUMBER: number\nSTRING: string\nBOOLEAN: boolean\nDATETIME: datetime';
COMMENT ON TABLE "statenode" IS 'One node of the hierarchical state tree, addressed by a dotted path.';
CREATE TABLE IF NOT EXISTS "historyrecord" (
    "id" UUID NOT NULL PRIMARY KEY,
    "created_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "updated_at" TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    "utility_type" VARCHAR(11) NOT NULL,
    "meter_name" VARCHAR(32) NOT NULL,
    "year" INT NOT NULL,
    "consumption" DECIMAL(14,3) NOT NULL,
    "consumption_volume" DECIMAL(14,3),
    "consumption_ht" DECIMAL(14,3),
    "consumption_nt" DECIMAL(14,3),
    "total_yearly" DECIMAL(12,2) NOT NULL,
    "balance" DECIMAL(12,2) NOT NULL DEFAULT 0,
    "end_reading" DECIMAL(14,3),
    "source" VARCHAR(8) NOT NULL DEFAULT 'close',
    CONSTRAINT "uid_historyrec_utility_5c1f0e" UNIQUE ("utility_type", "meter_name", "year")
);
COMMENT ON COLUMN "historyrecord"."utility_type" IS 'GAS: gas\nWATER: water\nELECTRICITY: electricity\nGENERATION: generation';
COMMENT ON COLUMN "historyrecord"."consumption_volume" IS 'Gas volume in m³';
COMMENT ON COLUMN "historyrecord"."balance" IS 'Positive means owed, negative means credit';
COMMENT ON COLUMN "historyrecord"."source" IS 'CLOSE: close\nROLLOVER: rollover\nIMPORT: import';
COMMENT ON TABLE "historyrecord" IS 'Archived figures of one closed billing year of a meter.';
CREATE TABLE IF NOT EXISTS "aerich" (
    "id" SERIAL NOT NULL PRIMARY KEY,
    "version" VARCHAR(255) NOT NULL,
    "app" VARCHAR(100) NOT NULL,
    "content" JSONB NOT NULL
);"""


async def downgrade(db: BaseDBAsyncClient) -> str:
    return """
        DROP TABLE IF EXISTS "historyrecord";
        DROP TABLE IF EXISTS "statenode";"""
