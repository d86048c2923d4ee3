import os
import shutil
import tempfile
import unittest

from core.children_service import (
    can_access_child,
    create_child,
    create_profile,
    get_child_by_invite_code,
    get_profile,
    join_child,
    list_children,
    serialize_child,
)
from core.db import Db
from core.errors import ConstraintViolation


class ChildrenServiceTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix="children-")
        self.db = Db(f"sqlite:///{os.path.join(self.temp_dir, 'children.db')}")
        self.db.create_tables()
        self.session = self.db.get_session()

    def tearDown(self):
        self.session.close()
        self.db.dispose()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_create_profile(self):
        profile = create_profile(self.session, "parent-1", role="Parent", dob="1990-05-01T00:00:00", tier="premium")
        self.assertEqual(profile.role, "parent")
        self.assertEqual(profile.dob, "1990-05-01")
        self.assertEqual(get_profile(self.session, "parent-1").tier, "premium")
        with self.assertRaises(ConstraintViolation):
            create_profile(self.session, "parent-2", role="teacher")

    def test_create_and_list_children(self):
        a = create_child(self.session, "parent-1", "Ada", 7)
        create_child(self.session, "parent-1", "Ben", 10)
        create_child(self.session, "parent-2", "Cy", 5)

        rows = list_children(self.session, "parent-1")
        self.assertEqual(sorted(x.name for x in rows), ["Ada", "Ben"])
        self.assertEqual(len(a.invite_code), 8)
        self.assertEqual(a.invite_code, a.invite_code.upper())

        data = serialize_child(a, include_invite_code=False)
        self.assertNotIn("invite_code", data)
        self.assertEqual(data["age"], 7)

    def test_create_child_validation(self):
        with self.assertRaises(ConstraintViolation):
            create_child(self.session, "parent-1", "  ", 7)
        with self.assertRaises(ConstraintViolation):
            create_child(self.session, "parent-1", "Ada", 2)
        with self.assertRaises(ConstraintViolation):
            create_child(self.session, "", "Ada", 7)

    def test_join_with_invite_code(self):
        child = create_child(self.session, "parent-1", "Ada", 7)
        self.assertIsNone(join_child(self.session, "NOPE0000", "kid-1"))

        joined = join_child(self.session, child.invite_code.lower(), "kid-1")
        self.assertEqual(joined.id, child.id)
        self.assertEqual(joined.profile_id, "kid-1")
        # 同一账号重复绑定可以，其他账号不行
        self.assertIsNotNone(join_child(self.session, child.invite_code, "kid-1"))
        self.assertIsNone(join_child(self.session, child.invite_code, "kid-2"))
        self.assertEqual(get_child_by_invite_code(self.session, child.invite_code).profile_id, "kid-1")

    def test_access_rules(self):
        child = create_child(self.session, "parent-1", "Ada", 7)
        self.assertTrue(can_access_child("parent-1", child))
        self.assertFalse(can_access_child("kid-1", child))
        join_child(self.session, child.invite_code, "kid-1")
        self.assertTrue(can_access_child("kid-1", child))
        self.assertFalse(can_access_child("parent-2", child))
        self.assertFalse(can_access_child("", child))
        self.assertFalse(can_access_child("parent-1", None))


if __name__ == "__main__":
    unittest.main()
