from __future__ import annotations

from helpers import run_project, run_rule


def test_g06_legacy_types_and_access_patterns() -> None:
    findings = run_rule(
        "G06",
        """
import java.util.*;

class Queues {
    private Hashtable<String, Integer> counts = new Hashtable<>();

    void drain(ArrayList<String> pending, LinkedList<Integer> numbers) {
        Vector<String> v = new Vector<>();
        pending.remove(0);
        pending.add(0, "x");
        for (int i = 0; i < numbers.size(); i++) {
            numbers.get(i);
        }
        numbers.get(0);
    }
}
""",
        path="Queues.java",
    )
    assert [(f.location.start_line, f.message.split(" ")[0]) for f in findings] == [
        (5, "`Hashtable`"),
        (8, "`Vector`"),
        (9, "Removing"),
        (10, "Inserting"),
        (12, "`LinkedList.get(int)`"),
    ]
    hashtable, vector = findings[0], findings[1]
    assert hashtable.suggestion == "HashMap<String, Integer>"
    assert vector.message.startswith("`Vector` is a legacy synchronized type; prefer `ArrayList`")
    assert all(f.severity == "warning" for f in findings)


def test_g06_concrete_type_follows_assignments() -> None:
    findings = run_rule(
        "G06",
        """
import java.util.*;

class Jobs {
    void run() {
        List<String> queue = new ArrayList<>();
        queue.remove(0);
        List<String> mixed = cond() ? new ArrayList<>() : new LinkedList<>();
        mixed.remove(0);
    }

    boolean cond() { return true; }
}
""",
        path="Jobs.java",
    )
    assert len(findings) == 1
    assert findings[0].location.start_line == 7
    assert findings[0].message.startswith("Removing from the front of an `ArrayList`")


def test_g07_needs_complete_index() -> None:
    source = """
public class Solo {
    public void unused() { }
}
"""
    assert run_rule("G07", source, path="Solo.java") == []


def test_g07_flags_members_unused_outside_their_class() -> None:
    cart = """
package shop;

public class Cart {
    public int total;
    public void add(String item) { }
    public void clear() { }
    public String toString() { return ""; }
    public static void main(String[] args) { }
    protected void helper() { }
    @Deprecated
    public void legacy() { }
}
"""
    checkout = """
package shop;

class Checkout {
    void run(Cart cart) {
        cart.add("x");
    }
}
"""
    findings = run_project("G07", [("shop/Cart.java", cart), ("shop/Checkout.java", checkout)])
    assert [f.message for f in findings] == [
        "Public field `total` is never used outside `Cart`.",
        "Public method `clear` is never used outside `Cart`.",
        "Protected method `helper` is never used outside `Cart`.",
    ]
    assert findings[1].suggestion == "Make `clear` private (or package-private if tests need it)."
    assert {f.location.path for f in findings} == {"shop/Cart.java"}
    assert all(f.severity == "info" for f in findings)


def test_g07_skips_methods_implementing_unknown_supertypes() -> None:
    source = """
public class Handler extends com.vendor.BaseHandler {
    public void handle() { }
}
"""
    assert run_project("G07", [("Handler.java", source)]) == []


def test_g08_private_field_used_through_interface_operations() -> None:
    findings = run_rule(
        "G08",
        """
import java.util.ArrayList;

class Roster {
    private ArrayList<String> names = new ArrayList<>();

    void add(String name) {
        names.add(name);
    }

    int count() {
        return names.size();
    }
}
""",
        path="Roster.java",
    )
    assert len(findings) == 1
    finding = findings[0]
    assert finding.message == "Field `names` is declared as `ArrayList<String>`, but every use fits `List`."
    assert finding.suggestion == "List<String>"
    assert finding.location.start_line == 5
    assert finding.severity == "info"


def test_g08_implementation_specific_use_or_escape_is_not_flagged() -> None:
    findings = run_rule(
        "G08",
        """
import java.util.ArrayList;

class Roster {
    private ArrayList<String> names = new ArrayList<>();
    private ArrayList<String> shared = new ArrayList<>();

    void grow() {
        names.ensureCapacity(100);
    }

    ArrayList<String> expose() {
        shared.add("x");
        return shared;
    }
}
""",
        path="Roster.java",
    )
    assert findings == []


def test_g08_parameters_and_private_return_types() -> None:
    findings = run_rule(
        "G08",
        """
import java.util.ArrayList;
import java.util.HashMap;

class Report {
    void print(HashMap<String, Integer> counts) {
        for (String key : counts.keySet()) {
            System.out.println(key + counts.get(key));
        }
    }

    private ArrayList<String> build() {
        return new ArrayList<>();
    }

    int size() {
        return build().size();
    }
}
""",
        path="Report.java",
    )
    assert [(f.message, f.suggestion) for f in findings] == [
        (
            "Parameter `counts` is declared as `HashMap<String, Integer>`, but every use fits `Map`.",
            "Map<String, Integer>",
        ),
        (
            "Return type of `build` is declared as `ArrayList<String>`, but every use fits `List`.",
            "List<String>",
        ),
    ]


SHAPES = """
interface Shape { double area(); }
class Circle implements Shape { public double area() { return 1; } }

@FunctionalInterface
interface Op { int apply(int x); }
class Inc implements Op { public int apply(int x) { return x + 1; } }

interface Animal { }
class Dog implements Animal { }
class Cat implements Animal { }
"""


def test_g09_single_file_is_advisory() -> None:
    findings = run_rule("G09", SHAPES, path="Shapes.java")
    assert len(findings) == 1
    finding = findings[0]
    assert finding.message == "Interface `Shape` has a single implementation (`Circle`) among the analyzed files."
    assert finding.severity == "info"
    assert finding.confidence == "low"


def test_g09_complete_project_is_a_warning() -> None:
    findings = run_project("G09", [("Shapes.java", SHAPES)])
    assert len(findings) == 1
    assert findings[0].message == "Interface `Shape` has a single implementation (`Circle`)."
    assert findings[0].severity == "warning"
    assert findings[0].confidence == "high"


def test_g09_anonymous_implementation_counts() -> None:
    findings = run_project(
        "G09",
        [
            ("Task.java", "interface Task { void run(); }"),
            (
                "Main.java",
                """
class Main {
    Task task = new Task() {
        public void run() { }
    };
}
""",
            ),
        ],
    )
    assert [f.message for f in findings] == ["Interface `Task` has a single implementation (an anonymous class)."]
    assert findings[0].location.path == "Task.java"


def test_g10_equals_without_hash_code() -> None:
    findings = run_rule(
        "G10",
        """
class Point {
    private final int x;
    private final String label;

    Point(int x, String label) {
        this.x = x;
        this.label = label;
    }

    @Override
    public boolean equals(Object o) {
        return o instanceof Point;
    }
}
""",
        path="Point.java",
    )
    assert len(findings) == 1
    finding = findings[0]
    assert finding.severity == "error"
    assert finding.message == "`Point` overrides equals(Object) but not hashCode(); equal objects would hash differently."
    assert finding.location.start_line == 12
    assert finding.suggestion == "@Override\npublic int hashCode() {\n    return Objects.hash(x, label);\n}"


def test_g10_hash_code_without_equals() -> None:
    findings = run_rule(
        "G10",
        """
class Money {
    private long cents;
    private String currency;
    private double rate;

    @Override
    public int hashCode() {
        return (int) cents;
    }
}
""",
        path="Money.java",
    )
    assert len(findings) == 1
    suggestion = findings[0].suggestion or ""
    assert "Money other = (Money) o;" in suggestion
    assert (
        "return cents == other.cents && Objects.equals(currency, other.currency) "
        "&& Double.compare(rate, other.rate) == 0;"
    ) in suggestion


def test_g10_paired_or_overloaded_methods_are_fine() -> None:
    findings = run_rule(
        "G10",
        """
class Both {
    public boolean equals(Object o) { return this == o; }
    public int hashCode() { return 1; }
}

class Overload {
    public boolean equals(Overload other) { return true; }
    public static int hashCode(Object o) { return 0; }
}
""",
        path="Both.java",
    )
    assert findings == []


def test_g09_same_named_interfaces_in_different_packages_stay_apart() -> None:
    findings = run_project(
        "G09",
        [
            ("a/Service.java", "package a;\n\npublic interface Service { void call(); }\n"),
            ("a/LocalService.java", "package a;\n\nclass LocalService implements Service { public void call() { } }\n"),
            ("b/Service.java", "package b;\n\npublic interface Service { void call(); }\n"),
            (
                "b/Impls.java",
                """
package b;

class FastService implements Service { public void call() { } }

class SlowService implements b.Service { public void call() { } }
""",
            ),
            (
                "c/Remote.java",
                """
package c;

import b.*;

class Remote implements Service { public void call() { } }
""",
            ),
        ],
    )
    assert [(f.location.path, f.message) for f in findings] == [
        ("a/Service.java", "Interface `Service` has a single implementation (`LocalService`)."),
    ]
