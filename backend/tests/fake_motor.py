"""
In-memory stand-ins for the motor client, session and collections.

The fake session journals every collection it writes to and restores it
when the transaction is aborted or raises.
"""
import copy

from bson import ObjectId

from core.progress_ledger import ProjectAggregate


class FakeUpdateResult:
    def __init__(self, modified_count):
        self.modified_count = modified_count
        self.matched_count = modified_count


class FakeInsertResult:
    def __init__(self, inserted_id):
        self.inserted_id = inserted_id


def _matches(doc, query):
    return all(doc.get(key) == value for key, value in query.items())


def _set_path(doc, path, value):
    *parents, leaf = path.split(".")
    target = doc
    for part in parents:
        target = target.setdefault(part, {})
    target[leaf] = value


class FakeCollection:

    def __init__(self, docs=None):
        self.docs = [copy.deepcopy(doc) for doc in docs or []]
        self.before_update = None
        self.update_error = None
        self.insert_error = None

    async def find_one(self, query, projection=None, session=None):
        for doc in self.docs:
            if _matches(doc, query):
                return copy.deepcopy(doc)
        return None

    async def update_one(self, query, update, session=None):
        if self.before_update:
            self.before_update(self)
        if self.update_error:
            raise self.update_error
        for doc in self.docs:
            if _matches(doc, query):
                if session is not None:
                    session.journal(self)
                for path, value in update.get("$set", {}).items():
                    _set_path(doc, path, copy.deepcopy(value))
                for key, value in update.get("$push", {}).items():
                    doc.setdefault(key, []).append(copy.deepcopy(value))
                for key, value in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + value
                return FakeUpdateResult(1)
        return FakeUpdateResult(0)

    async def insert_one(self, doc, session=None):
        if self.insert_error:
            raise self.insert_error
        if session is not None:
            session.journal(self)
        doc.setdefault("_id", ObjectId())
        self.docs.append(copy.deepcopy(doc))
        return FakeInsertResult(doc["_id"])

    async def insert_many(self, docs, session=None):
        for doc in docs:
            await self.insert_one(doc, session=session)


class FakeTransaction:

    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        self.session.in_transaction = True
        self.session.snapshots = {}
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self.session.in_transaction:
            if exc_type is None:
                self.session.committed = True
            else:
                self.session.rollback()
        self.session.in_transaction = False
        return False


class FakeSession:

    def __init__(self):
        self.in_transaction = False
        self.committed = False
        self.aborted = False
        self.snapshots = {}

    def journal(self, collection):
        self.snapshots.setdefault(id(collection), (collection, copy.deepcopy(collection.docs)))

    def rollback(self):
        for collection, docs in self.snapshots.values():
            collection.docs = docs
        self.snapshots = {}

    def start_transaction(self):
        return FakeTransaction(self)

    async def abort_transaction(self):
        self.rollback()
        self.aborted = True
        self.in_transaction = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeClient:

    def __init__(self):
        self.sessions = []

    async def start_session(self):
        session = FakeSession()
        self.sessions.append(session)
        return session


class FakeDB:

    def __init__(self, projects=None):
        self.projects = FakeCollection(projects)
        self.audit_logs = FakeCollection()
        self.users = FakeCollection()
        self.discarded_documents = FakeCollection()


def project_document(progress=0.0, bill_amount=0.0, status="Ongoing", work_value=100000):
    aggregate = ProjectAggregate.create("PRJ-ENG", work_value, bill_amount, status=status)
    aggregate.physical_progress = progress
    aggregate.id = ObjectId()
    doc = aggregate.to_document()
    doc["status_history"] = []
    doc["status_workflow"] = {}
    return doc
