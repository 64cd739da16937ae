#
# Copyright (c) Contributors to the Open 3D Engine Project.
# For complete copyright and license terms please see the LICENSE at the root of this distribution.
#
# SPDX-License-Identifier: Apache-2.0 OR MIT
#
"""Tests for the Haskell binding generator."""

import pytest

from crossbind import haskell
from crossbind.common import GenerationError
from crossbind.features import Copyable, class_add_features
from crossbind.haskell import HsTypeSide, cpp_type_to_hs_type
from crossbind.spec import (
    CatchClass,
    Purity,
    add_module_exports,
    callback_set_throws,
    class_make_exception,
    class_set_dtor_private,
    handle_exceptions,
    make_callback,
    make_class,
    make_fn,
    make_interface,
    make_module,
    mk_method,
)
from crossbind.types import (
    bool_t,
    callback_t,
    const_t,
    enum_t,
    fn_t,
    ident,
    int_t,
    obj_t,
    ptr_t,
    to_gc_t,
    tvar,
    void_t,
)

BOX_PATH = "Foreign/Box/Box.hs"


def _module_text(result, path=BOX_PATH):
    assert result.success, result.error_message
    return result.files[path]


def test_module_layout(box_interface):
    result = haskell.generate(box_interface)
    assert result.success, result.error_message
    assert list(result.files) == [BOX_PATH]

    lines = result.files[BOX_PATH].splitlines()
    assert lines[0].startswith("{-# LANGUAGE ")
    assert "-- GENERATED FILE, EDITS WILL BE LOST" in lines
    assert "module Foreign.Box.Box (" in lines
    assert "  ) where" in lines
    assert "import qualified Prelude as CBP" in lines
    assert "import qualified Foreign.Crossbind.Runtime as CBR" in lines


def test_type_sides(box_interface, int_box, color_enum):
    def render(side, t):
        return cpp_type_to_hs_type(box_interface, side, t).render()

    assert render(HsTypeSide.C, bool_t()) == "CBFC.CBool"
    assert render(HsTypeSide.HS, bool_t()) == "CBP.Bool"
    assert render(HsTypeSide.C, enum_t(color_enum)) == "CBFC.CInt"
    assert render(HsTypeSide.HS, enum_t(color_enum)) == "Color"
    assert render(HsTypeSide.C, ptr_t(obj_t(int_box))) == "CBF.Ptr IntBox"
    assert render(HsTypeSide.HS, ptr_t(const_t(obj_t(int_box)))) == "IntBoxConst"
    assert render(HsTypeSide.C, obj_t(int_box)) == "CBF.Ptr IntBoxConst"
    assert render(HsTypeSide.HS, obj_t(int_box)) == "CBP.Int"
    assert render(HsTypeSide.C, ptr_t(fn_t([int_t()], void_t()))) == "CBF.FunPtr (CBFC.CInt -> CBP.IO ())"


def test_type_variables_are_rejected(box_interface):
    with pytest.raises(GenerationError):
        cpp_type_to_hs_type(box_interface, HsTypeSide.HS, tvar("T"))


def test_enum_emission(box_interface):
    text = _module_text(haskell.generate(box_interface))
    assert "  Color (..)," in text
    assert "data Color =" in text
    assert "  | Color_LightGreen" in text
    assert "  fromEnum Color_Unknown = -1" in text
    assert "  toEnum (-1) = Color_Unknown" in text


def test_bitspace_emission(box_interface):
    text = _module_text(haskell.generate(box_interface))
    assert "newtype Flags = Flags { fromFlags :: CBFC.CUInt }" in text
    assert "class IsFlags a where" in text
    assert "instance IsFlags Color where" in text
    assert "flags_Read = Flags 1" in text
    assert "flags_Write = Flags 2" in text
    assert "  let arg1' = fromFlags arg1 in" in text


def test_class_emission(box_interface):
    text = _module_text(haskell.generate(box_interface))
    assert "class IntBoxValue a where" in text
    assert "instance {-# OVERLAPPABLE #-} IntBoxConstPtr a => IntBoxValue a where" in text
    assert "instance {-# OVERLAPPING #-} IntBoxValue (CBP.Int) where" in text
    assert "class (CBR.CppPtr this) => IntBoxConstPtr this where" in text
    assert "class (IntBoxConstPtr this) => IntBoxPtr this where" in text
    assert "data IntBox =" in text
    assert "instance CBR.Deletable IntBox where" in text
    assert "instance IntBoxValue a => CBR.Assignable IntBox a where" in text
    assert "instance CBR.Decodable (CBF.Ptr IntBox) IntBox where" in text
    assert "instance CBR.Encodable IntBox (CBP.Int) where" in text
    assert (
        'foreign import ccall "crossbind__IntBox_new" intBox_new\' :: '
        "CBFC.CInt -> CBP.IO (CBF.Ptr IntBox)"
    ) in text
    assert "intBox_get :: IntBoxValue arg1 => arg1 -> CBP.IO CBFC.CInt" in text
    assert 'foreign import ccall "&crossbind__IntBox__delete" deletePtr\'IntBox' in text


def test_functions(box_interface):
    text = _module_text(haskell.generate(box_interface))
    assert "makeBox :: CBFC.CInt -> CBP.IO CBP.Int" in text
    assert "(CBR.decodeAndDelete . IntBoxConst) =<<" in text
    assert "favorite :: Color" in text
    assert "{-# NOINLINE favorite #-}" in text
    assert "favorite = CBSIU.unsafePerformIO $" in text
    assert "counter_set :: CBFC.CInt -> CBP.IO ()" in text
    assert "limit_set" not in text


def test_callback_emission(box_interface):
    text = _module_text(haskell.generate(box_interface))
    fn_type = "CBFC.CInt -> CBP.IO CBFC.CInt"
    assert f'foreign import ccall "wrapper" intCallback\'newFunPtr :: ({fn_type})' in text
    assert f"intCallback :: ({fn_type}) -> CBP.IO (CBR.CCallback ({fn_type}))" in text
    assert "intCallback f'hs = do" in text
    assert "  f'p <- intCallback'newFunPtr f'c" in text
    assert "  intCallback'newCallback f'p CBR.freeHaskellFunPtrFunPtr CBP.False" in text
    assert "  intCallback arg1 >>= \\arg1' ->" in text


def test_returning_gc_callback_fails(int_callback):
    get_callback = make_fn(ident("getCallback"), None, Purity.NONPURE, [], to_gc_t(callback_t(int_callback)))
    module = add_module_exports([int_callback, get_callback], make_module("cb", "cb.hpp", "cb.cpp"))
    result = haskell.generate(make_interface("cb", [module]))
    assert not result.success
    assert "Can't receive a callback from C++" in result.error_message
    assert "function getCallback" in result.error_message
    assert result.files == {}


def test_unconvertible_object_value_fails():
    plain = make_class(ident("Plain"), None, [], [], [])
    get_plain = make_fn(ident("getPlain"), None, Purity.NONPURE, [], obj_t(plain))
    module = add_module_exports([plain, get_plain], make_module("p", "p.hpp", "p.cpp"))
    result = haskell.generate(make_interface("p", [module]))
    assert not result.success
    assert "Plain" in result.error_message


def test_private_destructor_is_not_deletable():
    hidden = class_set_dtor_private(make_class(ident("Hidden"), None, [], [], []))
    module = add_module_exports([hidden], make_module("h", "h.hpp", "h.cpp"))
    text = _module_text(haskell.generate(make_interface("h", [module])), "H.hs")
    assert "CBR.Deletable Hidden" not in text
    assert "deletePtr'Hidden" not in text
    assert "toGcPtr _ = CBP.fail" in text


def test_inheritance_casts():
    base = make_class(ident("Base"), None, [], [], [])
    derived = make_class(ident("Derived"), None, [base], [], [])
    module = add_module_exports([base, derived], make_module("cls", "cls.hpp", "cls.cpp"))
    text = _module_text(haskell.generate(make_interface("cls", [module])), "Cls.hs")
    assert "class (DerivedConstPtr this, BasePtr this) => DerivedPtr this where" in text
    assert (
        'foreign import ccall "crossbind__cast__Derived__Base" castDerivedToBase :: '
        "CBF.Ptr DerivedConst -> CBF.Ptr BaseConst"
    ) in text
    assert 'foreign import ccall "crossbind__cast__Base__Derived" castBaseToDerived' in text
    assert "instance BasePtr Derived where" in text
    assert "instance DerivedSuperConst BaseConst where" in text


def test_exceptions():
    error = class_add_features([Copyable()], class_make_exception(make_class(ident("MyError"), None, [], [], [])))
    risky = handle_exceptions(
        [CatchClass(error)], make_fn(ident("risky"), None, Purity.NONPURE, [], int_t())
    )
    handler = callback_set_throws(True, make_callback("Handler", [], void_t()))
    module = add_module_exports([error, risky, handler], make_module("exc", "exc.hpp", "exc.cpp"))
    interface = make_interface("exc", [module], exception_support_module="exc")
    text = _module_text(haskell.generate(interface), "Exc.hs")

    assert (
        "risky' :: CBF.Ptr CBFC.CInt -> CBF.Ptr (CBF.Ptr ()) -> CBP.IO CBFC.CInt" in text
    )
    assert "(CBR.internalHandleExceptions exceptionDb' (risky'))" in text
    assert "instance CBR.CppException MyError where" in text
    assert "exceptionDb' :: CBR.ExceptionDb" in text
    assert "(CBR.ExceptionId 1, CBR.cppExceptionInfo (CBP.undefined :: MyError))" in text
    assert "  let f'c excId' excPtr' =" in text
    assert "CBR.internalHandleCallbackExceptions excId' excPtr' $" in text


def test_module_cycles_get_boot_files():
    foo = make_class(ident("Foo"), None, [], [], [mk_method("useBar", [ptr_t(obj_t("Bar"))], void_t())])
    bar = make_class(ident("Bar"), None, [], [], [mk_method("getFoo", [], ptr_t(obj_t("Foo")))])
    a = add_module_exports([foo], make_module("a", "a.hpp", "a.cpp"))
    b = add_module_exports([bar], make_module("b", "b.hpp", "b.cpp"))
    result = haskell.generate(make_interface("cyc", [a, b]))
    assert result.success, result.error_message
    assert set(result.files) == {"A.hs", "A.hs-boot", "B.hs", "B.hs-boot"}

    assert "import {-# SOURCE #-} B" in result.files["A.hs"].splitlines()
    assert "import {-# SOURCE #-} A" in result.files["B.hs"].splitlines()

    boot = result.files["A.hs-boot"]
    assert "data Foo =" in boot
    assert "instance CBR.CppPtr Foo" in boot
    assert "foreign import" not in boot
    assert "fooUseBar" not in boot
    assert "foo_useBar" not in boot


def test_acyclic_modules_have_no_boot_files(box_interface):
    result = haskell.generate(box_interface)
    assert not any(path.endswith(".hs-boot") for path in result.files)


def test_objects_by_value_use_a_scoped_pointer(box_interface):
    text = _module_text(haskell.generate(box_interface))
    assert "consumeBox :: IntBoxValue arg1 => arg1 -> CBP.IO ()" in text
    assert "  withIntBoxPtr arg1 $ CBP.flip CBR.withCppPtr $ \\arg1' ->" in text


def test_callback_objects_are_decoded_and_encoded(box_interface):
    text = _module_text(haskell.generate(box_interface))
    assert (
        "boxCallback :: (CBP.Int -> CBP.IO CBP.Int) -> "
        "CBP.IO (CBR.CCallback (CBF.Ptr IntBoxConst -> CBP.IO (CBF.Ptr IntBoxConst)))"
    ) in text
    lines = [line.strip() for line in text.splitlines()]
    start = lines.index("boxCallback f'hs = do")
    assert lines[start + 1:start + 5] == [
        "let f'c arg1 =",
        "CBR.decode (IntBoxConst arg1) >>= \\arg1' ->",
        "(CBP.fmap (CBR.toPtr) . CBR.encode) =<<",
        "(f'hs arg1')",
    ]


def test_types_need_a_module_to_render_in():
    with pytest.raises(GenerationError, match="no modules"):
        cpp_type_to_hs_type(make_interface("empty", []), HsTypeSide.HS, int_t())
